"""Command-line entry point: configuration handling, interface listing and capture."""

import argparse
import signal
import sys
import threading

from .capture import CaptureError, PacketCapture
from .config import (
    AlertingConfig,
    BruteForceConfig,
    Config,
    ConfigError,
    DetectionConfig,
    InterfaceConfig,
    LoggingConfig,
    PortScanConfig,
    TrafficAnomalyConfig,
    load_config,
)
from .interfaces import InterfaceError, InterfaceManager
from .logger import Logger, LoggerConfig, new_logger

DEFAULT_CONFIG_PATH = "configs/config.json"
PLACEHOLDER_INTERFACE = "YOUR_INTERFACE_HERE"
STATS_INTERVAL = 30.0
INTERESTING_TCP_PORTS = frozenset({22, 80, 443})


def build_default_config(interface_manager: InterfaceManager) -> Config:
    """A sensible starting configuration using the first suitable interface."""
    suitable = interface_manager.suitable_interfaces()
    name = suitable[0] if suitable else PLACEHOLDER_INTERFACE
    return Config(
        interfaces=[
            InterfaceConfig(name=name, promiscuous=True, timeout="1s", buffer_size=1024)
        ],
        detection=DetectionConfig(
            port_scan=PortScanConfig(
                enabled=True, threshold=10, time_window="30s", severity="high"
            ),
            brute_force=BruteForceConfig(
                enabled=True, failed_attempts=5, time_window="60s", severity="critical"
            ),
            traffic_anomaly=TrafficAnomalyConfig(
                enabled=True,
                bytes_per_second_threshold=1_000_000,
                packets_per_second_threshold=1000,
                time_window="10s",
            ),
        ),
        alerting=AlertingConfig(
            log_file="logs/alerts.json",
            console_output=True,
            pretty_print=False,
            dedup_window="300s",
            max_alerts_per_minute=100,
        ),
        logging=LoggingConfig(
            level="info",
            format="json",
            file="logs/ids.json",
            console=True,
            pretty_print=False,
        ),
    )


def generate_default_config(config_path, interface_manager: InterfaceManager) -> Config:
    """Write the default configuration to config_path and return it."""
    config = build_default_config(interface_manager)
    config.save(config_path)
    return config


def validate_config_interfaces(cfg: Config, interface_manager: InterfaceManager) -> None:
    """Raise InterfaceError naming every configured interface that is unusable."""
    unavailable = []
    for iface in cfg.interfaces:
        try:
            interface_manager.validate_interface(iface.name)
        except InterfaceError:
            unavailable.append(iface.name)
    if unavailable:
        raise InterfaceError(
            f"configured interfaces not available: [{' '.join(unavailable)}]"
        )


def load_or_create_config(config_path, interface_manager: InterfaceManager) -> Config:
    """Load the configuration, or offer to generate one when it cannot be loaded.

    Exits with status 0 after generating a configuration so it can be reviewed.
    """
    try:
        cfg = load_config(config_path)
    except ConfigError:
        pass
    else:
        try:
            validate_config_interfaces(cfg, interface_manager)
        except InterfaceError as exc:
            print(f"Warning: Configuration validation failed: {exc}")
            print("Consider regenerating config with --generate-config")
        return cfg

    print(f"Configuration file not found: {config_path}")
    try:
        response = input("Would you like to generate a default configuration? (y/N): ")
    except EOFError:
        response = ""
    response = response.strip()

    if response in ("y", "Y"):
        try:
            generate_default_config(config_path, interface_manager)
        except ConfigError as exc:
            raise ConfigError(f"failed to generate default config: {exc}") from exc
        print(f"Default configuration created at: {config_path}")
        print("Please review the configuration and run the program again.")
        raise SystemExit(0)

    raise ConfigError("configuration required to proceed")


def format_interface_listing(interface_manager: InterfaceManager) -> str:
    """Human-readable list of interfaces, marking the ones recommended for capture."""
    suitable = set(interface_manager.suitable_interfaces())
    lines = ["Available network interfaces:"]
    for name, info in sorted(interface_manager.list_interfaces().items()):
        status = "UP" if info.is_up else "DOWN"
        recommended = " (RECOMMENDED)" if name in suitable else ""
        addresses = "[" + " ".join(info.addresses) + "]"
        lines.append(
            f"  {name} ({info.description}) - {status} - {addresses}{recommended}"
        )
    return "\n".join(lines)


def process_packets(packet_capture: PacketCapture, log: Logger) -> int:
    """Consume a capture's packets, logging TCP traffic to well-known service ports.

    Returns the number of packets that were logged.
    """
    interesting = 0
    for packet in packet_capture.packets():
        if packet.protocol == "TCP" and packet.dest_port in INTERESTING_TCP_PORTS:
            interesting += 1
            log.debug(
                "Interesting packet captured",
                protocol=packet.protocol,
                source_ip="" if packet.source_ip is None else str(packet.source_ip),
                dest_ip="" if packet.dest_ip is None else str(packet.dest_ip),
                dest_port=packet.dest_port,
                payload_size=packet.payload_size,
                flags=list(packet.flags),
            )
    return interesting


def _report_statistics(captures, log: Logger, stop: threading.Event) -> None:
    while not stop.wait(STATS_INTERVAL):
        for capture in captures:
            stats = capture.stats
            log.info(
                "Packet capture statistics",
                interface=capture.interface_name,
                total_packets=stats.total_packets,
                bytes_total=stats.bytes_total,
                protocols=dict(stats.packets_by_proto),
            )


def _parse_args(argv):
    parser = argparse.ArgumentParser(prog="idshabby", description="Intrusion detection system")
    parser.add_argument(
        "--config", "-config", default=DEFAULT_CONFIG_PATH, help="Path to configuration file"
    )
    parser.add_argument(
        "--list-interfaces",
        "-list-interfaces",
        action="store_true",
        help="List available network interfaces",
    )
    parser.add_argument(
        "--generate-config",
        "-generate-config",
        action="store_true",
        help="Generate default configuration file",
    )
    return parser.parse_args(argv)


def _generate(config_path) -> int:
    manager = InterfaceManager()
    try:
        manager.discover_interfaces()
        generate_default_config(config_path, manager)
    except (InterfaceError, ConfigError) as exc:
        print(f"Failed to generate config: {exc}", file=sys.stderr)
        return 1
    print(f"Default configuration generated at: {config_path}")
    print("Please review and customize the configuration before running the IDS.")
    return 0


def _run_captures(cfg: Config, manager: InterfaceManager, log: Logger) -> int:
    captures = []
    for iface in cfg.interfaces:
        try:
            manager.validate_interface(iface.name)
        except InterfaceError as exc:
            log.warning(f"Skipping interface {iface.name}", error=str(exc))
            continue
        capture = PacketCapture(iface.name, iface, log)
        try:
            capture.start()
        except CaptureError as exc:
            log.error(f"Failed to start capture on {iface.name}", error=str(exc))
            continue
        captures.append(capture)
        threading.Thread(
            target=process_packets,
            args=(capture, log),
            name=f"process-{iface.name}",
            daemon=True,
        ).start()

    if not captures:
        log.error("No interfaces available for packet capture")
        return 1

    shutdown = threading.Event()
    stop_stats = threading.Event()

    def _on_signal(signum, frame):
        shutdown.set()

    previous = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    stats_thread = threading.Thread(
        target=_report_statistics, args=(captures, log, stop_stats), daemon=True
    )
    stats_thread.start()
    try:
        while not shutdown.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    log.info("Shutting down Intrusion Detection System")
    for capture in captures:
        capture.stop()
    stop_stats.set()
    return 0


def main(argv=None) -> int:
    """Run the intrusion detection system; returns the process exit status."""
    args = _parse_args(argv)

    if args.generate_config:
        return _generate(args.config)

    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        return 1

    try:
        log = new_logger(
            LoggerConfig(
                level=cfg.logging.level,
                format=cfg.logging.format,
                file=cfg.logging.file,
                console=cfg.logging.console,
                pretty_print=cfg.logging.pretty_print,
            )
        )
    except OSError as exc:
        print(f"Failed to initialize logger: {exc}", file=sys.stderr)
        return 1

    try:
        log.config_loaded(args.config)

        manager = InterfaceManager()
        try:
            manager.discover_interfaces()
        except InterfaceError as exc:
            log.error("Failed to discover network interfaces", error=str(exc))
            return 1

        log.info("Starting Intrusion Detection System")

        if args.list_interfaces:
            print(format_interface_listing(manager))
            return 0

        return _run_captures(cfg, manager, log)
    finally:
        log.close()


if __name__ == "__main__":
    sys.exit(main())