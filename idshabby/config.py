"""Configuration model: loading from JSON, defaults, saving and duration parsing."""

import json
import re
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import timedelta
from fractions import Fraction
from pathlib import Path
from typing import Any, get_args, get_origin


class ConfigError(Exception):
    """Raised when a configuration cannot be read, parsed or written."""


@dataclass
class InterfaceConfig:
    name: str = ""
    promiscuous: bool = False
    timeout: str = ""
    buffer_size: int = 0


@dataclass
class PortScanConfig:
    enabled: bool = False
    threshold: int = 0
    time_window: str = ""
    severity: str = ""


@dataclass
class BruteForceConfig:
    enabled: bool = False
    failed_attempts: int = 0
    time_window: str = ""
    severity: str = ""


@dataclass
class TrafficAnomalyConfig:
    enabled: bool = False
    bytes_per_second_threshold: int = 0
    packets_per_second_threshold: int = 0
    time_window: str = ""


@dataclass
class DetectionConfig:
    port_scan: PortScanConfig = field(default_factory=PortScanConfig)
    brute_force: BruteForceConfig = field(default_factory=BruteForceConfig)
    traffic_anomaly: TrafficAnomalyConfig = field(default_factory=TrafficAnomalyConfig)


@dataclass
class AlertingConfig:
    log_file: str = ""
    console_output: bool = False
    pretty_print: bool = False
    dedup_window: str = ""
    max_alerts_per_minute: int = 0


@dataclass
class LoggingConfig:
    level: str = ""
    format: str = ""
    file: str = ""
    console: bool = False
    pretty_print: bool = False


@dataclass
class Config:
    interfaces: list[InterfaceConfig] = field(default_factory=list)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """Build a configuration from decoded JSON; missing keys keep zero values."""
        return _coerce(cls, data, "config")

    def to_dict(self) -> dict:
        return asdict(self)

    def set_defaults(self) -> None:
        """Fill in default values for settings left empty."""
        self.logging.level = self.logging.level or "info"
        self.logging.format = self.logging.format or "json"
        self.logging.file = self.logging.file or "logs/ids.json"
        self.alerting.log_file = self.alerting.log_file or "logs/alerts.json"
        self.alerting.dedup_window = self.alerting.dedup_window or "300s"
        self.alerting.max_alerts_per_minute = self.alerting.max_alerts_per_minute or 100
        for iface in self.interfaces:
            iface.timeout = iface.timeout or "1s"
            iface.buffer_size = iface.buffer_size or 1024

    def save(self, config_path) -> None:
        """Write the configuration as indented JSON, creating the directory."""
        path = Path(config_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"failed to create config directory: {exc}") from exc
        try:
            path.write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"failed to write config file: {exc}") from exc


def _coerce(kind, value: Any, where: str):
    if is_dataclass(kind):
        if value is None:
            return kind()
        if not isinstance(value, dict):
            raise ConfigError(f"{where}: expected an object, got {type(value).__name__}")
        return kind(**{
            spec.name: _coerce(spec.type, value[spec.name], f"{where}.{spec.name}")
            for spec in fields(kind)
            if value.get(spec.name) is not None
        })
    if get_origin(kind) is list:
        if not isinstance(value, list):
            raise ConfigError(f"{where}: expected an array, got {type(value).__name__}")
        (item_kind,) = get_args(kind)
        return [_coerce(item_kind, item, f"{where}[{i}]") for i, item in enumerate(value)]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigError(f"{where}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def load_config(config_path) -> Config:
    """Load a configuration file and apply defaults."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"configuration file not found: {config_path}")
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc
    try:
        config = Config.from_dict(json.loads(raw))
    except (ValueError, ConfigError) as exc:
        raise ConfigError(f"failed to parse JSON config: {exc}") from exc
    config.set_defaults()
    return config


_UNIT_NANOS = {
    "ns": 1, "us": 1_000, "\u00b5s": 1_000, "\u03bcs": 1_000, "ms": 1_000_000,
    "s": 10**9, "m": 60 * 10**9, "h": 3600 * 10**9,
}
_MAX_NANOS = (1 << 63) - 1
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "1.5h" or "1h30m"."""
    original = text
    negative = text[:1] == "-"
    if text[:1] in ("+", "-"):
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f'time: invalid duration "{original}"')

    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        whole, frac, unit = match.groups()
        if not whole and not frac:
            raise ValueError(f'time: invalid duration "{original}"')
        if not unit:
            raise ValueError(f'time: missing unit in duration "{original}"')
        if unit not in _UNIT_NANOS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{original}"')
        amount = Fraction(int(whole or "0"))
        if frac:
            amount += Fraction(int(frac), 10 ** len(frac))
        total += amount * _UNIT_NANOS[unit]
        if total > _MAX_NANOS:
            raise ValueError(f'time: invalid duration "{original}"')
        pos = match.end()

    nanos = -int(total) if negative else int(total)
    return timedelta(microseconds=nanos / 1000)