"""Scan result and gateway models."""

from collections import Counter
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .host import Host, RiskLevel

UNKNOWN_EXTERNAL_IP = "Unknown"


class ScanState(str, Enum):
    """Lifecycle of a scan run."""

    IDLE = "idle"
    PARSING = "parsing"
    DISCOVERING = "discovering"
    PORT_SCANNING = "port-scanning"
    SERVICE_DETECTING = "service-detecting"
    OS_DETECTING = "os-detecting"
    VULN_SCANNING = "vuln-scanning"
    TOPOLOGY_MAPPING = "topology-mapping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAILED)


# Phases reported as progress, in execution order
SCAN_PHASES: tuple[ScanState, ...] = (
    ScanState.PARSING,
    ScanState.DISCOVERING,
    ScanState.PORT_SCANNING,
    ScanState.SERVICE_DETECTING,
    ScanState.OS_DETECTING,
    ScanState.VULN_SCANNING,
    ScanState.TOPOLOGY_MAPPING,
)


class RouteEntry(BaseModel):
    """One row of the routing table."""

    destination: str
    gateway: str = ""
    interface: str = ""


class GatewayInfo(BaseModel):
    """Default gateway, routes and the path towards the internet."""

    default_gateway: str = ""
    external_ip: str = UNKNOWN_EXTERNAL_IP
    routes: list[RouteEntry] = Field(default_factory=list)
    internet_path: list[str] = Field(default_factory=list)

    @property
    def has_gateway(self) -> bool:
        return bool(self.default_gateway)


class ScanResult(BaseModel):
    """Result of a scan run, complete or partial."""

    target_range: str
    state: ScanState = ScanState.IDLE
    hosts: list[Host] = Field(default_factory=list)
    gateway: GatewayInfo | None = None
    error: str | None = None
    scan_time: datetime = Field(default_factory=datetime.now)
    duration_seconds: float = 0.0
    progress: float = 0.0

    @property
    def completed(self) -> bool:
        return self.state == ScanState.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.state == ScanState.CANCELLED

    @property
    def hosts_up(self) -> int:
        """Count of hosts that are alive."""
        return sum(1 for h in self.hosts if h.is_alive)

    @property
    def open_port_count(self) -> int:
        return sum(len(h.open_ports) for h in self.hosts)

    @property
    def hosts_by_risk(self) -> dict[RiskLevel, int]:
        """Number of hosts in each risk tier."""
        counts = Counter(h.risk_level for h in self.hosts)
        return {level: counts.get(level, 0) for level in RiskLevel}

    def get_host(self, ip: str) -> Host | None:
        for host in self.hosts:
            if host.ip == ip:
                return host
        return None
