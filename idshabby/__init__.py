"""Network monitoring: interface discovery, raw packet capture, traffic statistics and structured logging."""

__version__ = "0.1.0"