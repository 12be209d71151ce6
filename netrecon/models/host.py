"""Host record model and merge rules."""

import ipaddress
from enum import IntEnum

from pydantic import BaseModel, Field


class RiskLevel(IntEnum):
    """Ordered risk tier assigned by the vulnerability heuristics."""

    MINIMAL = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name


def address_sort_key(ip: str) -> tuple[int, int, str]:
    """Sort key placing IPv4 before IPv6 and both before hostnames."""
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return (2, 0, ip)
    return (0 if addr.version == 4 else 1, int(addr), ip)


_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain"})
_UNKNOWN_LABELS = frozenset({"Unknown"})


def _pick(mine: str, theirs: str, placeholders: frozenset[str] = frozenset()) -> str:
    """Choose between two values for the same field, independent of order.

    Empty loses to anything, a placeholder loses to a real value, and
    otherwise the lexicographically smaller value wins.
    """
    candidates = [value for value in (mine, theirs) if value]
    if not candidates:
        return ""
    return min(candidates, key=lambda value: (value in placeholders, value))


class Host(BaseModel):
    """A discovered network host.

    The network address is the identity. Every other field can be learned
    incrementally by the discovery strategies and scan phases, and records
    for the same address are combined with :meth:`merge`.
    """

    ip: str
    hostname: str = ""
    mac: str = ""
    vendor: str = ""
    is_alive: bool = False
    response_time_ms: int = -1  # -1 means not measured
    open_ports: set[int] = Field(default_factory=set)
    services: set[str] = Field(default_factory=set)
    os_guess: str = ""
    device_type: str = ""
    network_path: list[str] = Field(default_factory=list)
    vulnerabilities: set[str] = Field(default_factory=set)
    risk_level: RiskLevel = RiskLevel.MINIMAL
    # Canvas position used by the map renderer; never merged
    x: float = 0.0
    y: float = 0.0

    @property
    def display_name(self) -> str:
        """Return best available name for display."""
        if self.hostname:
            return self.hostname
        if self.vendor:
            return f"{self.ip} ({self.vendor})"
        return self.ip

    @property
    def sorted_ports(self) -> list[int]:
        return sorted(self.open_ports)

    @property
    def sorted_services(self) -> list[str]:
        return sorted(self.services)

    @property
    def sorted_vulnerabilities(self) -> list[str]:
        return sorted(self.vulnerabilities)

    def add_open_port(self, port: int) -> None:
        self.open_ports.add(port)

    def add_service(self, service: str) -> None:
        if service:
            self.services.add(service)

    def add_vulnerability(self, description: str) -> None:
        if description:
            self.vulnerabilities.add(description)

    def merge(self, other: "Host") -> "Host":
        """Fold another partial record for the same address into this one.

        Sets are unioned and empty scalars are filled, so nothing already
        known is lost. When both records carry a value the choice does not
        depend on which side is merged into which: ``localhost`` and
        ``Unknown`` give way to real values, then the smaller value wins.
        Response time keeps the smaller positive value and liveness is
        OR-combined. Returns ``self``.
        """
        if other.ip != self.ip:
            raise ValueError(f"Cannot merge records for {self.ip} and {other.ip}")

        self.hostname = _pick(self.hostname, other.hostname, placeholders=_LOCAL_HOSTNAMES)
        self.mac = _pick(self.mac, other.mac)
        self.vendor = _pick(self.vendor, other.vendor)
        self.os_guess = _pick(self.os_guess, other.os_guess, placeholders=_UNKNOWN_LABELS)
        self.device_type = _pick(self.device_type, other.device_type)
        # Longer trace first, then the smaller one
        self.network_path = list(
            min(self.network_path, other.network_path, key=lambda path: (-len(path), path))
        )

        if other.response_time_ms > 0 and (
            self.response_time_ms <= 0 or other.response_time_ms < self.response_time_ms
        ):
            self.response_time_ms = other.response_time_ms
        elif self.response_time_ms < 0 and other.response_time_ms == 0:
            self.response_time_ms = 0

        self.is_alive = self.is_alive or other.is_alive
        self.open_ports |= other.open_ports
        self.services |= other.services
        self.vulnerabilities |= other.vulnerabilities
        self.risk_level = max(self.risk_level, other.risk_level)
        return self
