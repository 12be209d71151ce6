"""Service identification from port numbers and banners."""

import asyncio
import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from importlib import resources

from ..models.host import Host
from .pool import CancelToken, WorkerPool

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

UNKNOWN_SERVICE = "Unknown"
BANNER_TIMEOUT = 3.0
BANNER_MAX_LINES = 5

# Ports that only talk after a request
HTTP_PORTS = frozenset({80, 443, 8000, 8008, 8080})

SERVER_FAMILIES = ("Apache", "nginx", "Microsoft")

NETWORK_VENDORS = ("cisco", "netgear", "tp-link", "linksys", "d-link", "asus", "ubiquiti", "mikrotik")


@dataclass(frozen=True)
class ServiceSignature:
    """What is known about the service usually found on a port."""

    name: str
    banner: str = ""
    version_pattern: str = ""


def load_service_table() -> dict[int, ServiceSignature]:
    """Load the bundled port -> service table."""
    data = resources.files("netrecon").joinpath("data", "services.json").read_text(encoding="utf-8")
    return {int(port): ServiceSignature(**entry) for port, entry in json.loads(data).items()}


def analyze_banner(signature: ServiceSignature, banner: str) -> str:
    """Build a service label, enriched with whatever the banner reveals.

    The version pattern match is appended in parentheses and a server
    family hint (Apache, nginx, Microsoft) is appended after a dash unless
    the version match already names it.
    """
    label = signature.name
    if not banner:
        return label

    version = ""
    if signature.version_pattern:
        match = re.search(signature.version_pattern, banner)
        if match:
            version = match.group(0)
            label += f" ({version})"

    lowered = banner.lower()
    for family in SERVER_FAMILIES:
        if family.lower() in lowered:
            if family.lower() not in version.lower():
                label += f" - {family}"
            break
    return label


async def grab_banner(ip: str, port: int, timeout: float = BANNER_TIMEOUT) -> str:
    """Read up to a few lines of greeting from ``ip:port``; "" on any failure."""
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout=timeout)
    except (TimeoutError, OSError):
        return ""

    lines: list[str] = []
    try:
        if port in HTTP_PORTS:
            writer.write(b"HEAD / HTTP/1.0\r\n\r\n")
            await writer.drain()
        while len(lines) < BANNER_MAX_LINES:
            raw = await asyncio.wait_for(reader.readline(), timeout=timeout)
            if not raw:
                break
            lines.append(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
    except (TimeoutError, OSError) as e:
        logger.debug(f"Banner read from {ip}:{port} stopped: {e}")
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
    return "\n".join(lines)


def classify_device(host: Host) -> str:
    """Guess what kind of device ``host`` is from vendor, hostname and ports."""
    vendor = host.vendor.lower()
    hostname = host.hostname.lower()
    ports = host.open_ports

    if any(name in vendor for name in NETWORK_VENDORS):
        return "Network Equipment"
    if "router" in hostname or "gateway" in hostname:
        return "Router/Gateway"
    if "printer" in hostname or 631 in ports or 9100 in ports:
        return "Printer"
    if "camera" in hostname or "cam" in hostname:
        return "IP Camera"
    if "nas" in hostname or "storage" in hostname:
        return "Network Storage"
    if "vmware" in vendor or "virtualbox" in vendor:
        return "Virtual Machine"
    if "apple" in vendor:
        return "Apple Device"
    if "samsung" in vendor:
        return "Samsung Device"
    if 3389 in ports:
        return "Windows Host"
    if ports & HTTP_PORTS:
        return "Web Server"
    if 22 in ports:
        return "SSH Server"
    if host.ip.endswith(".1") or host.ip.endswith(".254"):
        return "Likely Gateway/Router"
    return ""


class ServiceFingerprinter:
    """Labels every open port of a host with a service name."""

    def __init__(
        self,
        table: dict[int, ServiceSignature] | None = None,
        banner_timeout: float = BANNER_TIMEOUT,
    ):
        self.table = table if table is not None else load_service_table()
        self.banner_timeout = banner_timeout

    def service_name(self, port: int) -> str:
        signature = self.table.get(port)
        return signature.name if signature else UNKNOWN_SERVICE

    async def identify(self, ip: str, port: int, grab_banners: bool = True) -> str:
        """Return the service label for one open port."""
        signature = self.table.get(port)
        if signature is None:
            return UNKNOWN_SERVICE
        if not grab_banners or not signature.version_pattern:
            return signature.name

        banner = await grab_banner(ip, port, self.banner_timeout)
        return analyze_banner(signature, banner)

    async def fingerprint_hosts(
        self,
        hosts: Iterable[Host],
        pool: WorkerPool,
        grab_banners: bool = True,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Add service labels and a device type to each host in place."""

        async def fingerprint_one(host: Host) -> None:
            for port in host.sorted_ports:
                if cancel is not None and cancel.cancelled:
                    return
                try:
                    service = await self.identify(host.ip, port, grab_banners)
                except Exception as e:
                    logger.debug(f"Fingerprinting {host.ip}:{port} failed: {e}")
                    service = self.service_name(port)
                host.add_service(service)
                if progress:
                    progress(f"Service detected on {host.ip}:{port} - {service}")

            if not host.device_type:
                host.device_type = classify_device(host)

        await pool.map(fingerprint_one, list(hosts), cancel)
