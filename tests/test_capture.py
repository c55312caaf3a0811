import logging
import socket
import struct
import threading
import time
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv6Address
from unittest import mock

import pytest

from idshabby.capture import CaptureError, PacketCapture, parse_packet, parse_tcp_flags
from idshabby.config import InterfaceConfig
from idshabby.logger import Logger

WHEN = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
SRC4 = IPv4Address("10.0.0.1")
DST4 = IPv4Address("10.0.0.2")


def ethernet(ethertype, payload):
    return b"\x02\x00\x00\x00\x00\x02" + b"\x02\x00\x00\x00\x00\x01" + struct.pack("!H", ethertype) + payload


def ipv4(protocol, payload, src=SRC4, dst=DST4, fragment=0):
    header = struct.pack(
        "!BBHHHBBH4s4s", 0x45, 0, 20 + len(payload), 1, fragment, 64, protocol, 0,
        src.packed, dst.packed,
    )
    return header + payload


def ipv6(next_header, payload, src, dst):
    header = struct.pack("!IHBB16s16s", 6 << 28, len(payload), next_header, 64, src.packed, dst.packed)
    return header + payload


def tcp(sport, dport, flags, payload=b""):
    return struct.pack("!HHIIBBHHH", sport, dport, 1, 0, 5 << 4, flags, 1024, 0, 0) + payload


def udp(sport, dport, payload=b""):
    return struct.pack("!HHHH", sport, dport, 8 + len(payload), 0) + payload


class Collect(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)

    def messages(self):
        return [record.getMessage() for record in self.records]


@pytest.fixture
def collected():
    handler = Collect()
    log = Logger(level=logging.DEBUG, handlers=[handler])
    yield log, handler
    log.close()


def make_capture(log, **overrides):
    values = dict(name="eth0", promiscuous=False, timeout="10ms", buffer_size=1024)
    values.update(overrides)
    return PacketCapture("eth0", InterfaceConfig(**values), log)


def test_parse_tcp_flags_in_header_order():
    assert parse_tcp_flags(0x02) == ["SYN"]
    assert parse_tcp_flags(0x12) == ["SYN", "ACK"]
    assert parse_tcp_flags(0x3F) == ["FIN", "SYN", "RST", "PSH", "ACK", "URG"]
    assert parse_tcp_flags(0) == []


def test_parse_ipv4_tcp_frame():
    frame = ethernet(0x0800, ipv4(6, tcp(40000, 443, 0x18, b"hello")))
    info = parse_packet(frame, WHEN, "eth0")
    assert info.protocol == "TCP"
    assert (info.source_ip, info.dest_ip) == (SRC4, DST4)
    assert (info.source_port, info.dest_port) == (40000, 443)
    assert info.payload_size == len(b"hello")
    assert info.flags == ["PSH", "ACK"]
    assert info.length == len(frame)
    assert info.raw_data == frame
    assert info.timestamp == WHEN
    assert info.interface == "eth0"


def test_parse_ipv4_udp_frame():
    frame = ethernet(0x0800, ipv4(17, udp(5353, 53, b"query")))
    info = parse_packet(frame, WHEN, "eth0")
    assert info.protocol == "UDP"
    assert (info.source_port, info.dest_port) == (5353, 53)
    assert info.payload_size == len(b"query")
    assert info.flags == []


def test_parse_icmp_frame():
    frame = ethernet(0x0800, ipv4(1, b"\x08\x00\x00\x00\x00\x01\x00\x01"))
    info = parse_packet(frame, WHEN, "eth0")
    assert info.protocol == "ICMP"
    assert (info.source_port, info.dest_port) == (0, 0)


def test_parse_vlan_tagged_frame():
    inner = struct.pack("!HH", 10, 0x0800) + ipv4(6, tcp(1234, 22, 0x02))
    info = parse_packet(ethernet(0x8100, inner), WHEN, "eth0")
    assert info.protocol == "TCP"
    assert info.dest_port == 22
    assert info.flags == ["SYN"]


def test_parse_ipv6_udp_frame():
    src = IPv6Address("2001:db8::1")
    dst = IPv6Address("2001:db8::2")
    frame = ethernet(0x86DD, ipv6(17, udp(1000, 2000, b"abc"), src, dst))
    info = parse_packet(frame, WHEN, "eth0")
    assert info.protocol == "UDP"
    assert (info.source_ip, info.dest_ip) == (src, dst)
    assert (info.source_port, info.dest_port) == (1000, 2000)


def test_parse_ipv6_with_hop_by_hop_still_finds_tcp():
    src = IPv6Address("2001:db8::1")
    dst = IPv6Address("2001:db8::2")
    hop_by_hop = bytes([6, 0]) + b"\x01\x04\x00\x00\x00\x00"
    frame = ethernet(0x86DD, ipv6(0, hop_by_hop + tcp(5000, 80, 0x10), src, dst))
    info = parse_packet(frame, WHEN, "eth0")
    assert info.protocol == "TCP"
    assert info.dest_port == 80


def test_fragmented_ipv4_keeps_ip_protocol_without_ports():
    frame = ethernet(0x0800, ipv4(6, tcp(40000, 443, 0x02), fragment=0x2000))
    info = parse_packet(frame, WHEN, "eth0")
    assert info.protocol == "TCP"
    assert (info.source_port, info.dest_port) == (0, 0)
    assert info.source_ip == SRC4


def test_non_ip_frame_is_unknown():
    info = parse_packet(ethernet(0x0806, b"\x00" * 28), WHEN, "eth0")
    assert info.protocol == "Unknown"
    assert info.source_ip is None


def test_truncated_frame_is_unknown():
    info = parse_packet(b"\x01\x02\x03", WHEN, "eth0")
    assert info.protocol == "Unknown"
    assert info.length == 3


def test_handle_frame_updates_stats_and_queues(collected):
    log, _ = collected
    capture = make_capture(log)
    tcp_frame = ethernet(0x0800, ipv4(6, tcp(1, 2, 0x02)))
    udp_frame = ethernet(0x0800, ipv4(17, udp(3, 4)))
    capture.handle_frame(tcp_frame, WHEN)
    capture.handle_frame(udp_frame, WHEN)
    assert capture.stats.total_packets == 2
    assert capture.stats.packets_by_proto == {"TCP": 1, "UDP": 1}
    assert capture.stats.bytes_total == len(tcp_frame) + len(udp_frame)
    assert capture.stats.last_packet_time == WHEN
    assert [p.protocol for p in capture.packets()] == ["TCP", "UDP"]


def test_full_channel_drops_and_logs(collected):
    log, handler = collected
    capture = make_capture(log)
    frame = ethernet(0x0800, ipv4(17, udp(3, 4)))
    for _ in range(1001):
        capture.handle_frame(frame, WHEN)
    assert capture.stats.total_packets == 1001
    assert len(list(capture.packets())) == 1000
    messages = handler.messages()
    assert messages.count("Packet channel full, dropping packet") == 1
    assert messages.count("Packet captured successfully") == 1


def test_stop_when_not_running_does_nothing(collected):
    log, handler = collected
    capture = make_capture(log)
    capture.stop()
    assert capture.is_running is False
    assert handler.records == []


def test_start_on_missing_interface_fails(collected):
    log, _ = collected
    capture = PacketCapture(
        "nosuchif0", InterfaceConfig(name="nosuchif0", timeout="10ms", buffer_size=64), log
    )
    with pytest.raises(CaptureError, match="Failed to open interface nosuchif0"):
        capture.start()
    assert capture.is_running is False


class FakeSocket:
    def __init__(self, frames):
        self.frames = list(frames)
        self.bound = None
        self.closed = False
        self.lock = threading.Lock()

    def bind(self, address):
        self.bound = address

    def settimeout(self, value):
        self.timeout = value

    def setsockopt(self, *args):
        self.option = args

    def recv_into(self, buffer, nbytes, flags=0):
        with self.lock:
            frame = self.frames.pop(0) if self.frames else None
        if frame is None:
            time.sleep(0.005)
            raise socket.timeout("timed out")
        buffer[:min(len(frame), nbytes)] = frame[:nbytes]
        return len(frame)

    def close(self):
        self.closed = True


def test_live_capture_with_fake_socket(collected):
    log, handler = collected
    big_frame = ethernet(0x0800, ipv4(6, tcp(40000, 443, 0x02, b"x" * 100)))
    fake = FakeSocket([big_frame])
    capture = make_capture(log, buffer_size=64)
    with mock.patch.object(socket, "AF_PACKET", 17, create=True), mock.patch.object(
        socket, "socket", lambda *args, **kwargs: fake
    ):
        capture.start()
        assert capture.is_running is True
        with pytest.raises(CaptureError, match="already running on eth0"):
            capture.start()
        stream = capture.packets()
        first = next(stream)
        capture.stop()
        rest = list(stream)
    assert first.dest_port == 443
    assert first.length == len(big_frame)
    assert len(first.raw_data) == 64
    assert rest == []
    assert capture.is_running is False
    assert fake.bound == ("eth0", 0)
    assert fake.closed is True
    messages = handler.messages()
    assert "Network interface monitoring started" in messages
    assert "Packet capture stopped" in messages