"""Discovery and validation of the network interfaces available for capture."""

import ipaddress
import socket
from dataclasses import dataclass, field

import psutil


class InterfaceError(Exception):
    """Raised when interfaces cannot be discovered or one is unusable."""


@dataclass
class InterfaceInfo:
    name: str
    description: str = ""
    addresses: list[str] = field(default_factory=list)
    is_up: bool = False
    is_loopback: bool = False


def _format_address(address: str) -> str | None:
    try:
        return str(ipaddress.ip_address(address.split("%", 1)[0]))
    except ValueError:
        return None


def _is_loopback(stats, addresses: list[str]) -> bool:
    if stats is None:
        return False
    flags = getattr(stats, "flags", None)
    if flags is not None:
        return "loopback" in (flag.strip() for flag in flags.split(","))
    return bool(addresses) and all(
        ipaddress.ip_address(address).is_loopback for address in addresses
    )


class InterfaceManager:
    """Keeps the set of known interfaces and decides which are fit for capture."""

    def __init__(self):
        self._interfaces: dict[str, InterfaceInfo] = {}

    def discover_interfaces(self) -> None:
        """Replace the known interfaces with those the system reports."""
        try:
            all_addresses = psutil.net_if_addrs()
            all_stats = psutil.net_if_stats()
        except (psutil.Error, OSError) as exc:
            raise InterfaceError(f"Unable to find any network interfaces: {exc}") from exc

        interfaces = {}
        for name in sorted(set(all_addresses) | set(all_stats)):
            addresses = [
                formatted
                for entry in all_addresses.get(name, ())
                if entry.family in (socket.AF_INET, socket.AF_INET6)
                and (formatted := _format_address(entry.address)) is not None
            ]
            stats = all_stats.get(name)
            interfaces[name] = InterfaceInfo(
                name=name,
                addresses=addresses,
                is_up=bool(stats is not None and stats.isup),
                is_loopback=_is_loopback(stats, addresses),
            )
        self._interfaces = interfaces

    def add_interface(self, info: InterfaceInfo) -> None:
        """Register an interface, replacing any known one of the same name."""
        self._interfaces[info.name] = info

    def get_interface(self, name: str) -> InterfaceInfo:
        try:
            return self._interfaces[name]
        except KeyError:
            raise InterfaceError(f"interface {name} is not found.") from None

    def list_interfaces(self) -> dict[str, InterfaceInfo]:
        return dict(self._interfaces)

    def validate_interface(self, name: str) -> None:
        """Raise InterfaceError unless the interface is known, up and not loopback."""
        info = self.get_interface(name)
        if not info.is_up:
            raise InterfaceError(f"Interface {name} is not up.")
        if info.is_loopback:
            raise InterfaceError(f"Interface {name} is a loopback device.")

    def suitable_interfaces(self) -> list[str]:
        """Names of interfaces that are up, not loopback and have an address."""
        return [
            name
            for name, info in self._interfaces.items()
            if info.is_up and not info.is_loopback and info.addresses
        ]