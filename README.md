# idshabby

Network monitoring groundwork for an intrusion detection system. It finds the
machine's network interfaces, captures raw frames on the interfaces named in
a configuration file, decodes the IP and transport headers, counts traffic per
interface, and writes structured log lines, as JSON or as key=value text.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
```

Capture opens `AF_PACKET` raw sockets, so it works on Linux only and normally
needs root or the `CAP_NET_RAW` capability.

## Usage

Write a starting configuration. It names the first interface that is up, not
loopback and has an address, or `YOUR_INTERFACE_HERE` if there is none:

```
idshabby --config configs/config.json --generate-config
```

List the discovered interfaces. Those fit for capture are marked
`(RECOMMENDED)`. This reads the configuration first, so the file must exist:

```
idshabby --config configs/config.json --list-interfaces
```

Start capturing on the configured interfaces:

```
idshabby --config configs/config.json
```

`--config` defaults to `configs/config.json`. The single-dash forms
(`-config`, `-list-interfaces`, `-generate-config`) work too. If the
configuration cannot be loaded the command prints the reason and exits with
status 1.

Interfaces that are unknown, down or loopback are skipped with a warning. The
program runs until SIGINT or SIGTERM. Every 30 seconds it logs, for each
interface, the total packets, total bytes and a count per protocol. TCP
packets to ports 22, 80 and 443 are logged at debug level.

## Configuration

A JSON document with four sections:

```json
{
  "interfaces": [
    {"name": "eth0", "promiscuous": true, "timeout": "1s", "buffer_size": 1024}
  ],
  "detection": {
    "port_scan": {"enabled": true, "threshold": 10, "time_window": "30s", "severity": "high"},
    "brute_force": {"enabled": true, "failed_attempts": 5, "time_window": "60s", "severity": "critical"},
    "traffic_anomaly": {
      "enabled": true,
      "bytes_per_second_threshold": 1000000,
      "packets_per_second_threshold": 1000,
      "time_window": "10s"
    }
  },
  "alerting": {
    "log_file": "logs/alerts.json",
    "console_output": true,
    "pretty_print": false,
    "dedup_window": "300s",
    "max_alerts_per_minute": 100
  },
  "logging": {
    "level": "info",
    "format": "json",
    "file": "logs/ids.json",
    "console": true,
    "pretty_print": false
  }
}
```

For each interface, `timeout` is the socket read timeout, a duration such as
`500ms` or `1s` (an invalid one falls back to one second), `buffer_size` is how
many bytes of each frame are kept, and `promiscuous` puts the interface into
promiscuous mode.

Missing values are filled in on loading: logging level `info`, format `json`,
log file `logs/ids.json`, alert log `logs/alerts.json`, dedup window `300s`,
100 alerts per minute, and per interface a timeout of `1s` and a buffer size
of 1024. An unknown logging level falls back to `info`; any format other than
`json` gives key=value text lines.

## What it does not do

The `detection` and `alerting` sections are read, defaulted and saved, but
nothing acts on them: there are no port-scan, brute-force or traffic-anomaly
detectors, no alerts are raised, and nothing is written to the alert log. The
package captures, counts and logs traffic only.

## Using it as a library

```python
from datetime import datetime, timezone

from idshabby.capture import parse_packet
from idshabby.config import load_config, parse_duration
from idshabby.interfaces import InterfaceManager
from idshabby.models import PacketStats

cfg = load_config("configs/config.json")       # raises ConfigError

manager = InterfaceManager()
manager.discover_interfaces()
print(manager.suitable_interfaces())
manager.validate_interface("eth0")             # raises InterfaceError if unusable

stats = PacketStats()
info = parse_packet(frame_bytes, datetime.now(timezone.utc), "eth0")
stats.update(info)

parse_duration("1h30m")                        # datetime.timedelta
```

- `idshabby.config`: `Config` and its section dataclasses, `Config.from_dict`,
  `Config.to_dict`, `Config.set_defaults`, `Config.save`, `load_config`,
  `parse_duration` and `ConfigError`.
- `idshabby.models`: `PacketInfo` (with `to_dict`), `ConnectionKey` and
  `PacketStats`.
- `idshabby.interfaces`: `InterfaceManager` and `InterfaceInfo`, plus
  `add_interface` to register interfaces by hand.
- `idshabby.capture`: `parse_packet`, `parse_tcp_flags` and `PacketCapture`,
  whose `start` and `stop` run capture in a background thread, `packets()`
  yields decoded packets, and `handle_frame` feeds a frame in directly.
- `idshabby.logger`: `new_logger(LoggerConfig(...))` builds a `Logger` with
  `debug`, `info`, `warning`, `error` taking keyword fields, and event helpers
  such as `config_loaded`, `interface_started`, `packet_captured`,
  `alert_generated` and `detection_triggered`. `JsonFormatter` writes one JSON
  object per record with sorted keys.
- `idshabby.cli`: `main`, `build_default_config`, `generate_default_config`,
  `validate_config_interfaces`, `load_or_create_config`,
  `format_interface_listing` and `process_packets`.