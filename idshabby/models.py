"""Packet records, connection keys and running packet statistics."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv6Address

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _rfc3339(moment: datetime) -> str:
    """RFC 3339 text with trailing fraction zeros dropped and "Z" for UTC."""
    text = moment.strftime("%Y-%m-%dT%H:%M:%S") if moment.year >= 1000 else (
        f"{moment.year:04d}-{moment:%m-%dT%H:%M:%S}"
    )
    fraction = f"{moment.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = moment.utcoffset()
    if offset is None:
        return text
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{'+' if minutes >= 0 else '-'}{hours:02d}:{mins:02d}"


@dataclass
class PacketInfo:
    """A captured packet reduced to the fields the detectors use."""

    timestamp: datetime = _ZERO_TIME
    interface: str = ""
    length: int = 0
    protocol: str = ""
    source_ip: IPv4Address | IPv6Address | None = None
    dest_ip: IPv4Address | IPv6Address | None = None
    source_port: int = 0
    dest_port: int = 0
    flags: list[str] = field(default_factory=list)
    payload_size: int = 0
    raw_data: bytes = field(default=b"", repr=False)

    def to_dict(self) -> dict:
        """JSON-ready mapping; zero ports and empty flags are left out, raw data never included."""
        data = {
            "timestamp": _rfc3339(self.timestamp),
            "interface": self.interface,
            "length": self.length,
            "protocol": self.protocol,
            "source_ip": "" if self.source_ip is None else str(self.source_ip),
            "dest_ip": "" if self.dest_ip is None else str(self.dest_ip),
        }
        if self.source_port:
            data["source_port"] = self.source_port
        if self.dest_port:
            data["dest_port"] = self.dest_port
        if self.flags:
            data["flags"] = list(self.flags)
        data["payload_size"] = self.payload_size
        return data


@dataclass(frozen=True)
class ConnectionKey:
    protocol: str
    source_ip: str
    dest_ip: str
    source_port: int = 0
    dest_port: int = 0

    def __str__(self) -> str:
        if self.source_port > 0 and self.dest_port > 0:
            return (f"{self.protocol}:{self.source_ip}:{self.source_port}"
                    f"->{self.dest_ip}:{self.dest_port}")
        return f"{self.protocol}:{self.source_ip}->{self.dest_ip}"


@dataclass
class PacketStats:
    total_packets: int = 0
    packets_by_proto: Counter = field(default_factory=Counter)
    bytes_total: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_packet_time: datetime = _ZERO_TIME

    def update(self, packet_info: PacketInfo) -> None:
        """Account for one more packet."""
        self.total_packets += 1
        self.packets_by_proto[packet_info.protocol] += 1
        self.bytes_total += packet_info.length
        self.last_packet_time = packet_info.timestamp