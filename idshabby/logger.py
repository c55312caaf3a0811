"""Structured logger with JSON or key=value output and IDS event helpers."""

import itertools
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from .models import _rfc3339

_LEVELS = {
    "panic": 60,
    "fatal": 50,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": 5,
}
_LEVEL_NAMES = {number: name for name, number in _LEVELS.items() if name != "warn"}
_FIELDS_ATTR = "ids_fields"
_RESERVED = ("timestamp", "level", "message")
_PLAIN_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-._/@^+")
_logger_ids = itertools.count(1)


def parse_level(name: str) -> int:
    """Map a level name such as "info" or "WARN" to a logging level."""
    try:
        return _LEVELS[name.lower()]
    except KeyError:
        raise ValueError(f"not a valid log level: {name!r}") from None


@dataclass
class LoggerConfig:
    level: str = ""
    format: str = ""
    file: str = ""
    console: bool = False
    pretty_print: bool = False


def _timestamp(record: logging.LogRecord) -> str:
    return _rfc3339(datetime.fromtimestamp(record.created).astimezone())


def _level_name(record: logging.LogRecord) -> str:
    return _LEVEL_NAMES.get(record.levelno, record.levelname.lower())


class JsonFormatter(logging.Formatter):
    """One JSON object per record, keys sorted, fields merged at top level."""

    def __init__(self, pretty_print: bool = False):
        super().__init__()
        self.pretty_print = pretty_print

    def format(self, record: logging.LogRecord) -> str:
        data = {
            f"fields.{key}" if key in _RESERVED else key: value
            for key, value in getattr(record, _FIELDS_ATTR, {}).items()
        }
        data.update(timestamp=_timestamp(record), level=_level_name(record),
                    message=record.getMessage())
        layout = {"indent": 2} if self.pretty_print else {"separators": (",", ":")}
        return json.dumps(data, sort_keys=True, default=str, ensure_ascii=False, **layout)


def _text_value(value: Any) -> str:
    text = str(value)
    if text and not set(text) <= _PLAIN_CHARS:
        return json.dumps(text, ensure_ascii=False)
    return text


class _TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, _FIELDS_ATTR, {})
        parts = [
            f"time={_text_value(_timestamp(record))}",
            f"level={_level_name(record)}",
            f"msg={_text_value(record.getMessage())}",
        ]
        parts.extend(f"{key}={_text_value(fields[key])}" for key in sorted(fields))
        return " ".join(parts)


class Logger:
    """Logger writing structured records to one or more handlers."""

    def __init__(self, level=logging.INFO, formatter=None, handlers=None):
        self._log = logging.Logger(f"idshabby.{next(_logger_ids)}", level)
        self._handlers = list(handlers) if handlers else [logging.StreamHandler(sys.stderr)]
        formatter = formatter or _TextFormatter()
        for handler in self._handlers:
            handler.setFormatter(formatter)
            self._log.addHandler(handler)

    def close(self) -> None:
        """Flush and release every output; files opened for this logger are closed."""
        for handler in self._handlers:
            handler.flush()
            self._log.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()
        self._handlers.clear()

    def _emit(self, level: int, message: str, fields: Mapping[str, Any]) -> None:
        if self._log.isEnabledFor(level):
            self._log.log(level, message, extra={_FIELDS_ATTR: dict(fields)})

    def debug(self, message, **kwargs):
        self._emit(logging.DEBUG, message, kwargs)

    def info(self, message, **kwargs):
        self._emit(logging.INFO, message, kwargs)

    def warning(self, message, **kwargs):
        self._emit(logging.WARNING, message, kwargs)

    def error(self, message, **kwargs):
        self._emit(logging.ERROR, message, kwargs)

    def packet_captured(self, interface_name, packet_count):
        self.info("Packet captured successfully", component="capture",
                  interface=interface_name, packet_count=packet_count,
                  event_type="packet_captured")

    def alert_generated(self, alert_id, rule_id, source_ip, severity):
        self.warning("Security alert generated", component="alerting", alert_id=alert_id,
                     rule_id=rule_id, source_ip=source_ip, severity=severity,
                     event_type="alert_generated")

    def config_loaded(self, config_file):
        self.info("Configuration loaded successfully", component="config",
                  config_file=str(config_file), event_type="config_loaded")

    def detection_engine_started(self, engine_type):
        self.info("Detection engine started", component="detector",
                  engine_type=engine_type, event_type="engine_started")

    def interface_started(self, interface_name):
        self.info("Network interface monitoring started", component="capture",
                  interface=interface_name, event_type="interface_started")

    def session_tracked(self, session_id, source_ip, dest_ip, protocol):
        self.debug("Network session tracked", component="analyzer", session_id=session_id,
                   source_ip=source_ip, dest_ip=dest_ip, protocol=protocol,
                   event_type="session_tracked")

    def detection_triggered(self, rule_name, source_ip, severity, details):
        fields = {"component": "detector", "rule_name": rule_name, "source_ip": source_ip,
                  "severity": severity, "event_type": "detection_triggered"}
        fields.update(details or {})
        self._emit(logging.WARNING, "Detection rule triggered", fields)

    def statistics_update(self, component, stats):
        fields = {"component": component, "event_type": "statistics_update"}
        fields.update(stats or {})
        self._emit(logging.INFO, "Statistics updated", fields)

    def error_occurred(self, component, operation, err):
        self.error("Operation failed", component=component, operation=operation,
                   error=str(err), event_type="error_occurred")

    def performance_metric(self, component, metric, value, unit):
        self.debug("Performance metric recorded", component=component, metric_name=metric,
                   metric_value=value, unit=unit, event_type="performance_metric")


def new_logger(config: LoggerConfig) -> Logger:
    """Create a logger from settings; unknown level names fall back to info."""
    try:
        level = parse_level(config.level)
    except ValueError:
        level = logging.INFO
    formatter = JsonFormatter(config.pretty_print) if config.format == "json" else None

    handlers = []
    if config.console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file, mode="a", encoding="utf-8"))
    return Logger(level=level, formatter=formatter, handlers=handlers)