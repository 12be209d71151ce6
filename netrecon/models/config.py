"""Configuration models using Pydantic for validation."""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 3000
DEFAULT_THREADS = 50

COMMON_PORTS: tuple[int, ...] = (
    21, 22, 23, 25, 53, 80, 110, 111, 135, 139,
    143, 443, 993, 995, 1723, 3306, 3389, 5432, 5900, 8080,
)

EXTENDED_PORTS: tuple[int, ...] = (
    20, 21, 22, 23, 25, 53, 67, 68, 69, 79, 80, 88, 102, 110, 111, 113, 119, 135, 137, 138,
    139, 143, 161, 162, 179, 389, 427, 443, 445, 465, 513, 514, 515, 543, 544, 548, 554, 587,
    631, 636, 646, 873, 990, 993, 995, 1025, 1026, 1027, 1028, 1029, 1110, 1433, 1720, 1723,
    1755, 1900, 2000, 2001, 2049, 2121, 2717, 3000, 3128, 3306, 3389, 3690, 3986, 4899, 5000,
    5009, 5051, 5060, 5101, 5190, 5357, 5432, 5631, 5666, 5800, 5900, 6000, 6001, 6646, 7000,
    7070, 7937, 7938, 8000, 8002, 8008, 8080, 8443, 8888, 9100, 9999, 10000, 32768, 49152,
    49153, 49154, 49155, 49156, 49157,
)


class ScanType(str, Enum):
    """What the scan should do beyond finding hosts."""

    PING_SWEEP = "ping-sweep"
    PORT_SCAN = "port-scan"
    FULL_SCAN = "full-scan"
    CUSTOM = "custom"


class PortScanTechnique(str, Enum):
    """How ports are probed."""

    TCP_CONNECT = "tcp-connect"
    TCP_SYN = "tcp-syn"
    UDP = "udp"
    COMPREHENSIVE = "comprehensive"


def _positive_int_or(value: Any, default: int) -> int:
    """Parse user input as a positive int, falling back to ``default``."""
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        logger.debug(f"Could not parse {value!r} as an integer, using {default}")
        return default
    if parsed <= 0:
        logger.debug(f"Non-positive value {parsed}, using {default}")
        return default
    return parsed


class ScanConfiguration(BaseModel):
    """Immutable description of one scan."""

    model_config = ConfigDict(frozen=True)

    target_range: str
    scan_type: ScanType = ScanType.PING_SWEEP
    port_technique: PortScanTechnique = PortScanTechnique.TCP_CONNECT
    ports: tuple[int, ...] = COMMON_PORTS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    threads: int = DEFAULT_THREADS
    resolve_hostnames: bool = True
    detect_services: bool = True
    detect_os: bool = False
    perform_traceroute: bool = False
    grab_banners: bool = True
    assess_vulnerabilities: bool = True
    detect_gateway: bool = True

    @model_validator(mode="before")
    @classmethod
    def select_port_list(cls, data: Any) -> Any:
        """Expand ``extended_ports`` and keep the port list non-empty."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.pop("extended_ports", False):
            data["ports"] = EXTENDED_PORTS
        elif not data.get("ports"):
            data["ports"] = COMMON_PORTS
        return data

    @field_validator("target_range")
    @classmethod
    def validate_target_range(cls, v: str) -> str:
        """Reject blank targets; the range syntax is checked when parsed."""
        v = v.strip()
        if not v:
            raise ValueError("Target range must not be empty")
        return v

    @field_validator("ports", mode="before")
    @classmethod
    def parse_ports(cls, v: Any) -> Any:
        """Accept a comma-separated string such as ``"22,80,443"``."""
        if isinstance(v, str):
            return tuple(int(p) for p in v.replace(" ", "").split(",") if p)
        return v

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        """Validate port numbers and drop duplicates, keeping order."""
        for port in v:
            if not 1 <= port <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {port}")
        return tuple(dict.fromkeys(v))

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def parse_timeout(cls, v: Any) -> int:
        return _positive_int_or(v, DEFAULT_TIMEOUT_MS)

    @field_validator("threads", mode="before")
    @classmethod
    def parse_threads(cls, v: Any) -> int:
        return _positive_int_or(v, DEFAULT_THREADS)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def requires_port_scan(self) -> bool:
        return self.scan_type != ScanType.PING_SWEEP

    def with_overrides(self, **overrides: Any) -> "ScanConfiguration":
        """Return a validated copy with some fields replaced."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return ScanConfiguration.model_validate(data)


class EngineSettings(BaseModel):
    """Tunables for the auxiliary lookups."""

    dns_timeout_seconds: float = 1.0
    external_ip_url: str = "https://api.ipify.org"
    external_ip_timeout_seconds: float = 3.0
    traceroute_target: str = "8.8.8.8"
    traceroute_max_hops: int = Field(default=8, ge=1, le=8)
    online_vendor_lookup: bool = False

    @field_validator("external_ip_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that URL is an HTTP/HTTPS URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must use http or https scheme, got '{v}'")
        return v


class Settings(BaseModel):
    """General application settings."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str = "logs"


class AppConfig(BaseModel):
    """Main configuration model."""

    scan: ScanConfiguration | None = None
    engine: EngineSettings = Field(default_factory=EngineSettings)
    settings: Settings = Field(default_factory=Settings)

    @classmethod
    def load(cls, path: Path | str = "config.json") -> "AppConfig":
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def load_or_default(cls, path: Path | str = "config.json") -> "AppConfig":
        """Load configuration or return default if file doesn't exist."""
        try:
            return cls.load(path)
        except FileNotFoundError:
            return cls()
