"""Live packet capture on an interface and decoding of captured frames."""

import queue
import socket
import struct
import threading
from datetime import datetime, timedelta, timezone
from ipaddress import IPv4Address, IPv6Address

from .config import InterfaceConfig, parse_duration
from .logger import Logger
from .models import PacketInfo, PacketStats

_CHANNEL_SIZE = 1000
_STATS_EVERY = 1000
_DEFAULT_SNAPLEN = 65535
_ETH_P_ALL = 0x0003
_SOL_PACKET = 263
_PACKET_ADD_MEMBERSHIP = 1
_PACKET_MR_PROMISC = 1
_MSG_TRUNC = getattr(socket, "MSG_TRUNC", 0x20)

_IP_PROTOCOL_NAMES = {
    0: "IPv6HopByHop", 1: "ICMPv4", 2: "IGMP", 4: "IPv4", 6: "TCP", 17: "UDP",
    41: "IPv6", 43: "IPv6Routing", 44: "IPv6Fragment", 47: "GRE", 50: "IPSecESP",
    51: "IPSecAH", 58: "ICMPv6", 59: "IPv6NoNextHeader", 60: "IPv6Destination",
    89: "OSPF", 94: "IPIP", 97: "EtherIP", 112: "VRRP", 132: "SCTP",
    136: "UDPLite", 137: "MPLSInIP",
}
_TCP_FLAG_NAMES = ((0x01, "FIN"), (0x02, "SYN"), (0x04, "RST"),
                   (0x08, "PSH"), (0x10, "ACK"), (0x20, "URG"))


class CaptureError(Exception):
    """Raised when a capture cannot be started."""


def parse_tcp_flags(flags: int) -> list[str]:
    """Names of the TCP control bits set in a flags byte, in header order."""
    return [name for bit, name in _TCP_FLAG_NAMES if flags & bit]


def _parse_ipv4(data: bytes):
    """Return (src, dst, protocol, transport payload or None), or None if malformed."""
    if len(data) < 20:
        return None
    header_len = (data[0] & 0x0F) * 4
    total = struct.unpack_from("!H", data, 2)[0] or len(data)
    if header_len < 20 or total < header_len or header_len > len(data):
        return None
    fragmented = struct.unpack_from("!H", data, 6)[0] & 0x3FFF
    payload = None if fragmented else data[header_len:min(total, len(data))]
    return IPv4Address(data[12:16]), IPv4Address(data[16:20]), data[9], payload


def _parse_ipv6(data: bytes):
    """Return (src, dst, first next header, (protocol, payload) or None), or None."""
    if len(data) < 40:
        return None
    length = struct.unpack_from("!H", data, 4)[0]
    source, dest, first = IPv6Address(data[8:24]), IPv6Address(data[24:40]), data[6]
    protocol, payload = first, (data[40:40 + length] if length else data[40:])
    while protocol in (0, 43, 44, 51, 60):
        if protocol == 44:
            if len(payload) < 8 or struct.unpack_from("!H", payload, 2)[0] & 0xFFF9:
                return source, dest, first, None
            size = 8
        else:
            if len(payload) < 2:
                return source, dest, first, None
            size = (payload[1] + 2) * 4 if protocol == 51 else (payload[1] + 1) * 8
            if size > len(payload):
                return source, dest, first, None
        protocol, payload = payload[0], payload[size:]
    return source, dest, first, (protocol, payload)


def _apply_transport(info: PacketInfo, protocol: int, payload: bytes) -> None:
    if protocol == 6 and len(payload) >= 20:
        data_offset = (payload[12] >> 4) * 4
        if 20 <= data_offset <= len(payload):
            info.source_port, info.dest_port = struct.unpack_from("!HH", payload, 0)
            info.protocol = "TCP"
            info.payload_size = len(payload) - data_offset
            info.flags = parse_tcp_flags(payload[13])
    elif protocol == 17 and len(payload) >= 8:
        source, dest, length = struct.unpack_from("!HHH", payload, 0)
        if 0 < length < 8:
            return
        info.source_port, info.dest_port = source, dest
        info.protocol = "UDP"
        info.payload_size = len(payload[8:length or None])
    elif protocol == 1 and len(payload) >= 8:
        info.protocol = "ICMP"


def parse_packet(data: bytes, timestamp: datetime, interface: str) -> PacketInfo:
    """Decode an Ethernet frame into a PacketInfo."""
    data = bytes(data)
    info = PacketInfo(timestamp=timestamp, interface=interface, length=len(data), raw_data=data)
    if len(data) >= 14:
        ethertype, body = struct.unpack_from("!H", data, 12)[0], data[14:]
        while ethertype in (0x8100, 0x88A8) and len(body) >= 4:
            ethertype, body = struct.unpack_from("!H", body, 2)[0], body[4:]
        parsed = None
        if ethertype == 0x0800:
            parsed = _parse_ipv4(body)
            if parsed is not None:
                parsed = (*parsed[:3], parsed[3] and (parsed[2], parsed[3]))
                if parsed[3] == b"":
                    parsed = (*parsed[:3], (parsed[2], b""))
        elif ethertype == 0x86DD:
            parsed = _parse_ipv6(body)
        if parsed is not None:
            info.source_ip, info.dest_ip, number, transport = parsed
            info.protocol = _IP_PROTOCOL_NAMES.get(number, "UnknownIPProtocol")
            if transport is not None:
                _apply_transport(info, *transport)
    if not info.protocol:
        info.protocol = "Unknown"
    return info


class PacketCapture:
    """Captures frames from one interface, keeps statistics and queues decoded packets."""

    def __init__(self, interface_name: str, config: InterfaceConfig, logger: Logger):
        self.interface_name = interface_name
        self.config = config
        self.logger = logger
        self.stats = PacketStats()
        self._queue: queue.Queue = queue.Queue(maxsize=_CHANNEL_SIZE)
        self._stop = threading.Event()
        self._closed = threading.Event()
        self._closed.set()
        self._running = False
        self._sock = None
        self._thread = None
        self._timeout = 1.0
        self._packet_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def _open(self):
        if not hasattr(socket, "AF_PACKET"):
            raise OSError("packet capture requires AF_PACKET sockets")
        sock = socket.socket(socket.AF_PACKET, socket.SOCK_RAW, socket.htons(_ETH_P_ALL))
        try:
            sock.bind((self.interface_name, 0))
            if self.config.promiscuous:
                request = struct.pack("iHH8s", socket.if_nametoindex(self.interface_name),
                                      _PACKET_MR_PROMISC, 0, b"")
                sock.setsockopt(_SOL_PACKET, _PACKET_ADD_MEMBERSHIP, request)
            sock.settimeout(self._timeout)
        except OSError:
            sock.close()
            raise
        return sock

    def start(self) -> None:
        """Open the interface and begin capturing in a background thread."""
        if self._running:
            raise CaptureError(f"Packet capture is already running on {self.interface_name}")
        try:
            timeout = parse_duration(self.config.timeout)
        except ValueError:
            timeout = timedelta(seconds=1)
        self._timeout = timeout.total_seconds() if timeout.total_seconds() > 0 else 1.0
        try:
            self._sock = self._open()
        except OSError as exc:
            raise CaptureError(f"Failed to open interface {self.interface_name}: {exc}") from exc

        self._running = True
        self._stop.clear()
        self._closed.clear()
        self.logger.interface_started(self.interface_name)
        self._thread = threading.Thread(target=self._capture_loop,
                                        name=f"capture-{self.interface_name}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop capturing and release the interface; does nothing when not running."""
        if not self._running:
            return
        self._stop.set()
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=self._timeout + 1.0)
            self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self.logger.info("Packet capture stopped", interface=self.interface_name)

    def packets(self):
        """Yield decoded packets until the capture has stopped and the queue is drained."""
        while True:
            try:
                yield self._queue.get(timeout=0.2)
            except queue.Empty:
                if self._closed.is_set() and self._queue.empty():
                    return

    def handle_frame(self, data: bytes, timestamp: datetime) -> PacketInfo:
        """Decode one captured frame, account for it and queue it for processing."""
        return self._accept(parse_packet(data, timestamp, self.interface_name))

    def _accept(self, info: PacketInfo) -> PacketInfo:
        self._packet_count += 1
        self.stats.update(info)
        try:
            self._queue.put_nowait(info)
        except queue.Full:
            self.logger.warning("Packet channel full, dropping packet",
                                interface=self.interface_name)
        if self._packet_count % _STATS_EVERY == 0:
            self.logger.packet_captured(self.interface_name, self._packet_count)
        return info

    def _capture_loop(self) -> None:
        snaplen = self.config.buffer_size if self.config.buffer_size > 0 else _DEFAULT_SNAPLEN
        buffer = bytearray(snaplen)
        sock = self._sock
        try:
            while not self._stop.is_set():
                try:
                    wire_length = sock.recv_into(buffer, snaplen, _MSG_TRUNC)
                except socket.timeout:
                    continue
                except OSError as exc:
                    if not self._stop.is_set():
                        self.logger.error_occurred("capture", "receive", exc)
                    break
                info = parse_packet(buffer[:min(wire_length, snaplen)],
                                    datetime.now(timezone.utc), self.interface_name)
                info.length = wire_length
                self._accept(info)
        finally:
            self._closed.set()