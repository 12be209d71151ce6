"""Services for discovering, scanning and analyzing network hosts."""

from .discovery import HostDiscoveryCoordinator, HostMap
from .gateway import GatewayDetector, GatewayUndetectableError
from .orchestrator import ScanOrchestrator
from .pool import CancelToken, WorkerPool
from .range_parser import InvalidTargetError, parse_target_range

__all__ = [
    "CancelToken",
    "GatewayDetector",
    "GatewayUndetectableError",
    "HostDiscoveryCoordinator",
    "HostMap",
    "InvalidTargetError",
    "ScanOrchestrator",
    "WorkerPool",
    "parse_target_range",
]
