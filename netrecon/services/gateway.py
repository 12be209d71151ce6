"""Gateway, routing table, external IP and traceroute detection."""

import asyncio
import ipaddress
import logging
import re

import httpx

from ..models.scan_result import UNKNOWN_EXTERNAL_IP, GatewayInfo, RouteEntry
from .commands import CommandError, CommandRunner, current_platform

logger = logging.getLogger(__name__)

# Timeout for the external IP request
HTTP_TIMEOUT = 3.0

EXTERNAL_IP_URL = "https://api.ipify.org"

TRACEROUTE_TARGET = "8.8.8.8"
TRACEROUTE_MAX_HOPS = 8
TRACEROUTE_TIMEOUT = 10.0

QUICK_TRACEROUTE_HOPS = 3
QUICK_TRACEROUTE_TIMEOUT = 5.0

ROUTE_TIMEOUT = 5.0

_IPV4 = re.compile(r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")
_WINDOWS_DEFAULT_ROUTE = re.compile(r"^\s*0\.0\.0\.0\s+0\.0\.0\.0\s+(\d+\.\d+\.\d+\.\d+)")
_TRACEROUTE_HEADERS = ("traceroute to", "tracing route", "over a maximum")


class GatewayUndetectableError(Exception):
    """The default gateway could not be determined."""


def _is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def parse_windows_gateway(output: str) -> str:
    """Parse ``route print 0.0.0.0`` output."""
    for line in output.splitlines():
        match = _WINDOWS_DEFAULT_ROUTE.match(line)
        if match:
            return match.group(1)
    raise GatewayUndetectableError("Could not detect Windows gateway")


def parse_macos_gateway(output: str) -> str:
    """Parse ``route -n get default`` output."""
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("gateway:"):
            gateway = line.split(":", 1)[1].strip()
            if gateway:
                return gateway
    raise GatewayUndetectableError("Could not detect macOS gateway")


def parse_linux_gateway(output: str) -> str:
    """Parse ``ip route show default`` output."""
    for line in output.splitlines():
        parts = line.split()
        if "via" in parts[:-1]:
            return parts[parts.index("via") + 1]
    raise GatewayUndetectableError("Could not detect Linux gateway")


def parse_routes(output: str, platform: str) -> list[RouteEntry]:
    """Parse a routing table listing into route entries.

    Lines that don't look like routes (headers, blank lines) are skipped.
    """
    routes = []
    for line in output.splitlines():
        parts = line.split()
        if not parts:
            continue

        if platform == "linux":
            # "default via 192.168.1.1 dev eth0 proto dhcp metric 100"
            gateway = parts[parts.index("via") + 1] if "via" in parts[:-1] else ""
            interface = parts[parts.index("dev") + 1] if "dev" in parts[:-1] else ""
            routes.append(RouteEntry(destination=parts[0], gateway=gateway, interface=interface))
        elif platform == "windows":
            # "0.0.0.0          0.0.0.0      192.168.1.1    192.168.1.10     25"
            if len(parts) >= 4 and _is_ipv4(parts[0]) and _is_ipv4(parts[1]):
                routes.append(RouteEntry(destination=f"{parts[0]}/{parts[1]}", gateway=parts[2], interface=parts[3]))
        else:
            # "default            192.168.1.1        UGScg          en0"
            if len(parts) < 2 or parts[0] in ("Destination", "Routing", "Internet:", "Internet6:"):
                continue
            interface = parts[3] if len(parts) >= 4 else ""
            routes.append(RouteEntry(destination=parts[0], gateway=parts[1], interface=interface))
    return routes


def parse_traceroute_output(output: str) -> list[str]:
    """Extract the first IPv4 address of every hop line."""
    hops = []
    for line in output.splitlines():
        if line.strip().lower().startswith(_TRACEROUTE_HEADERS):
            continue
        match = _IPV4.search(line)
        if match and _is_ipv4(match.group(1)):
            hops.append(match.group(1))
    return hops


def build_traceroute_command(destination: str, max_hops: int, wait_seconds: int, platform: str) -> list[str]:
    if platform == "windows":
        return ["tracert", "-h", str(max_hops), "-w", str(wait_seconds * 1000), destination]
    return ["traceroute", "-m", str(max_hops), "-w", str(wait_seconds), destination]


class GatewayDetector:
    """Service to get gateway and routing information."""

    def __init__(
        self,
        runner: CommandRunner,
        platform: str | None = None,
        http_timeout: float = HTTP_TIMEOUT,
        external_ip_url: str = EXTERNAL_IP_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        traceroute_target: str = TRACEROUTE_TARGET,
        max_hops: int = TRACEROUTE_MAX_HOPS,
    ):
        self.runner = runner
        self.platform = platform or current_platform()
        self.http_timeout = http_timeout
        self.external_ip_url = external_ip_url
        self.transport = transport
        self.traceroute_target = traceroute_target
        self.max_hops = max(1, min(max_hops, TRACEROUTE_MAX_HOPS))

    async def default_gateway(self) -> str:
        """Get the default gateway IP address.

        Raises:
            GatewayUndetectableError: no default route could be found.
        """
        if self.platform == "windows":
            cmd, parse = ["route", "print", "0.0.0.0"], parse_windows_gateway
        elif self.platform == "darwin":
            cmd, parse = ["route", "-n", "get", "default"], parse_macos_gateway
        else:
            cmd, parse = ["ip", "route", "show", "default"], parse_linux_gateway

        try:
            output = await self.runner.run(cmd, timeout=ROUTE_TIMEOUT)
        except CommandError as e:
            raise GatewayUndetectableError(str(e)) from e
        return parse(output.stdout)

    async def routes(self) -> list[RouteEntry]:
        """Get the routing table, or [] if it can't be read."""
        if self.platform == "windows":
            cmd = ["route", "print"]
        elif self.platform == "darwin":
            cmd = ["netstat", "-rn"]
        else:
            cmd = ["ip", "route"]

        try:
            output = await self.runner.run(cmd, timeout=ROUTE_TIMEOUT)
            return parse_routes(output.stdout, self.platform)
        except Exception as e:
            logger.error(f"Error getting routing table: {e}")
            return []

    async def external_ip(self) -> str:
        """Get the public/internet-facing IP address, or "Unknown"."""
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, transport=self.transport) as client:
                response = await client.get(self.external_ip_url)
                response.raise_for_status()
                ip = response.text.strip()
        except httpx.HTTPStatusError as e:
            logger.debug(f"Failed to get external IP: HTTP {e.response.status_code}")
            return UNKNOWN_EXTERNAL_IP
        except Exception as e:
            logger.debug(f"Could not detect external IP (timeout or network issue): {e}")
            return UNKNOWN_EXTERNAL_IP

        try:
            ipaddress.ip_address(ip)
        except ValueError:
            logger.debug(f"External IP service returned unexpected body: {ip[:40]!r}")
            return UNKNOWN_EXTERNAL_IP
        return ip

    async def traceroute(self, destination: str | None = None) -> list[str]:
        """Trace the path to ``destination`` (the internet by default); [] on failure."""
        destination = destination or self.traceroute_target
        cmd = build_traceroute_command(destination, self.max_hops, 2, self.platform)
        try:
            output = await self.runner.run(cmd, timeout=TRACEROUTE_TIMEOUT)
        except CommandError as e:
            logger.warning(f"Traceroute to {destination} failed: {e}")
            return []
        return parse_traceroute_output(output.stdout)

    async def quick_traceroute(self, destination: str) -> list[str]:
        """Short trace used for topology mapping.

        Private addresses are on the local segment and map directly to
        ``[destination]``.
        """
        try:
            if ipaddress.ip_address(destination).is_private:
                return [destination]
        except ValueError:
            pass

        cmd = build_traceroute_command(destination, QUICK_TRACEROUTE_HOPS, 1, self.platform)
        try:
            output = await self.runner.run(cmd, timeout=QUICK_TRACEROUTE_TIMEOUT)
        except CommandError as e:
            logger.debug(f"Quick traceroute to {destination} failed: {e}")
            return []
        return parse_traceroute_output(output.stdout)

    async def detect(self) -> GatewayInfo:
        """Assemble gateway information. Never raises."""
        info = GatewayInfo()
        try:
            info.default_gateway = await self.default_gateway()
        except GatewayUndetectableError as e:
            logger.warning(f"Gateway not detected: {e}")
        except Exception as e:
            logger.error(f"Error detecting gateway information: {e}")

        info.routes, info.external_ip = await asyncio.gather(self.routes(), self.external_ip())

        if info.external_ip != UNKNOWN_EXTERNAL_IP:
            info.internet_path = await self.traceroute()
        return info
