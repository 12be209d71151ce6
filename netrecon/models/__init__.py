"""Data models for the scan engine."""

from .config import AppConfig, EngineSettings, PortScanTechnique, ScanConfiguration, ScanType, Settings
from .host import Host, RiskLevel
from .scan_result import GatewayInfo, RouteEntry, ScanResult, ScanState

__all__ = [
    "AppConfig",
    "EngineSettings",
    "GatewayInfo",
    "Host",
    "PortScanTechnique",
    "RiskLevel",
    "RouteEntry",
    "ScanConfiguration",
    "ScanResult",
    "ScanState",
    "ScanType",
    "Settings",
]
