"""Reader for the operating system's neighbor (ARP) table."""

import logging
import re

from ..models.host import Host
from .commands import CommandError, CommandRunner, current_platform
from .vendors import BROADCAST_MAC, VendorLookup, normalize_mac

logger = logging.getLogger(__name__)

ARP_TABLE_TIMEOUT = 5.0

# "  192.168.1.1           00-11-22-33-44-55     dynamic"
_WINDOWS_LINE = re.compile(r"^\s*(\d+\.\d+\.\d+\.\d+)\s+([0-9a-fA-F]{2}(?:-[0-9a-fA-F]{2}){5})\s+\S+")
# "router.lan (192.168.1.1) at 0:11:22:33:44:55 on en0 ifscope [ethernet]"
_UNIX_LINE = re.compile(r"\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+([0-9a-fA-F]{1,2}(?::[0-9a-fA-F]{1,2}){5})\b")


def _pad_mac(mac: str) -> str:
    """macOS drops leading zeros ("0:1a:2:..."), pad each octet."""
    return ":".join(octet.zfill(2) for octet in mac.split(":"))


def parse_arp_table(
    output: str,
    platform: str | None = None,
    vendors: VendorLookup | None = None,
) -> dict[str, Host]:
    """Parse ``arp -a`` output into alive host records keyed by address.

    Incomplete entries and the broadcast address are skipped.
    """
    platform = platform or current_platform()
    hosts: dict[str, Host] = {}

    for line in output.splitlines():
        if platform == "windows":
            match = _WINDOWS_LINE.match(line)
            if not match:
                continue
            ip, raw_mac = match.group(1), match.group(2)
        else:
            match = _UNIX_LINE.search(line)
            if not match:
                continue
            ip, raw_mac = match.group(1), _pad_mac(match.group(2))

        mac = normalize_mac(raw_mac)
        if not mac or mac == BROADCAST_MAC:
            continue

        hosts[ip] = Host(
            ip=ip,
            mac=mac,
            vendor=vendors.lookup(mac) if vendors else "",
            is_alive=True,
        )
        logger.debug(f"Found device in address table: {ip} -> {mac}")

    return hosts


class AddressTableReader:
    """Reads the neighbor table via ``arp -a``."""

    def __init__(
        self,
        runner: CommandRunner,
        vendors: VendorLookup | None = None,
        platform: str | None = None,
    ):
        self.runner = runner
        self.vendors = vendors
        self.platform = platform or current_platform()

    async def read(self) -> dict[str, Host]:
        """Return the current table, or an empty dict if it can't be read."""
        try:
            output = await self.runner.run(["arp", "-a"], timeout=ARP_TABLE_TIMEOUT)
        except CommandError as e:
            logger.debug(f"Address table unavailable: {e}")
            return {}

        try:
            return parse_arp_table(output.stdout, self.platform, self.vendors)
        except Exception as e:
            logger.debug(f"Failed to parse address table: {e}")
            return {}
