import json
import logging

import pytest

from idshabby.logger import LoggerConfig, new_logger, parse_level


def _records(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture
def json_log(tmp_path):
    path = tmp_path / "logs" / "ids.json"
    log = new_logger(LoggerConfig(level="debug", format="json", file=str(path)))
    yield log, path
    log.close()


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("INFO") == logging.INFO
    assert parse_level("warn") == parse_level("warning") == logging.WARNING
    assert parse_level("error") == logging.ERROR
    assert parse_level("trace") < parse_level("debug")
    assert parse_level("panic") > parse_level("fatal") > parse_level("error")


def test_parse_level_rejects_unknown():
    with pytest.raises(ValueError):
        parse_level("loud")


def test_config_loaded_record(json_log):
    log, path = json_log
    log.config_loaded("configs/config.json")
    log.close()
    (record,) = _records(path)
    assert record["message"] == "Configuration loaded successfully"
    assert record["level"] == "info"
    assert record["component"] == "config"
    assert record["config_file"] == "configs/config.json"
    assert record["event_type"] == "config_loaded"
    assert "timestamp" in record


def test_alert_is_warning(json_log):
    log, path = json_log
    log.alert_generated("a1", "r1", "10.0.0.1", "high")
    log.close()
    (record,) = _records(path)
    assert record["level"] == "warning"
    assert record["message"] == "Security alert generated"
    assert (record["alert_id"], record["rule_id"], record["severity"]) == ("a1", "r1", "high")


def test_detection_details_merged(json_log):
    log, path = json_log
    log.detection_triggered("port_scan", "10.0.0.9", "high", {"ports": [22, 80], "count": 2})
    log.statistics_update("capture", {"total_packets": 5})
    log.close()
    detection, stats = _records(path)
    assert detection["rule_name"] == "port_scan"
    assert detection["ports"] == [22, 80]
    assert detection["count"] == 2
    assert detection["event_type"] == "detection_triggered"
    assert stats["total_packets"] == 5
    assert stats["message"] == "Statistics updated"


def test_error_occurred_stringifies(json_log):
    log, path = json_log
    log.error_occurred("capture", "open", OSError("no device"))
    log.close()
    (record,) = _records(path)
    assert record["error"] == "no device"
    assert record["operation"] == "open"
    assert record["message"] == "Operation failed"


def test_reserved_field_names_are_prefixed(json_log):
    log, path = json_log
    log.info("hello", level="custom")
    log.close()
    (record,) = _records(path)
    assert record["fields.level"] == "custom"
    assert record["level"] == "info"


def test_level_filtering(tmp_path):
    path = tmp_path / "ids.json"
    log = new_logger(LoggerConfig(level="info", format="json", file=str(path)))
    log.session_tracked("s1", "10.0.0.1", "10.0.0.2", "TCP")
    log.performance_metric("capture", "pps", 10, "packets/s")
    log.interface_started("eth0")
    log.close()
    records = _records(path)
    assert [r["event_type"] for r in records] == ["interface_started"]


def test_unknown_level_falls_back_to_info(tmp_path):
    path = tmp_path / "ids.json"
    log = new_logger(LoggerConfig(level="nonsense", format="json", file=str(path)))
    log.debug("hidden")
    log.info("shown")
    log.close()
    assert [r["message"] for r in _records(path)] == ["shown"]


def test_file_appends(tmp_path):
    path = tmp_path / "ids.json"
    for count in (1, 2):
        log = new_logger(LoggerConfig(format="json", file=str(path)))
        log.packet_captured("eth0", count)
        log.close()
    assert [r["packet_count"] for r in _records(path)] == [1, 2]


def test_pretty_print(tmp_path):
    path = tmp_path / "ids.json"
    log = new_logger(LoggerConfig(format="json", file=str(path), pretty_print=True))
    log.detection_engine_started("signature")
    log.close()
    text = path.read_text(encoding="utf-8")
    assert len(text.strip().splitlines()) > 1
    assert json.loads(text)["engine_type"] == "signature"


def test_console_output(capsys):
    log = new_logger(LoggerConfig(format="json", console=True))
    log.info("hello", answer=1)
    log.close()
    record = json.loads(capsys.readouterr().out.strip())
    assert record["message"] == "hello"
    assert record["answer"] == 1


def test_text_format(tmp_path):
    path = tmp_path / "ids.log"
    log = new_logger(LoggerConfig(level="debug", format="text", file=str(path)))
    log.session_tracked("s1", "10.0.0.1", "10.0.0.2", "TCP")
    log.close()
    line = path.read_text(encoding="utf-8").strip()
    assert 'msg="Network session tracked"' in line
    assert "session_id=s1" in line
    assert "event_type=session_tracked" in line