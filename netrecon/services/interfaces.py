"""Enumeration of this machine's own network interfaces."""

import ipaddress
import logging
import socket

import psutil

from ..models.host import Host
from .vendors import VendorLookup, normalize_mac

logger = logging.getLogger(__name__)


class LocalInterfaceEnumerator:
    """Turns the local machine's up, non-loopback IPv4 addresses into hosts."""

    def __init__(self, vendors: VendorLookup | None = None):
        self.vendors = vendors

    def enumerate(self) -> dict[str, Host]:
        """Return local addresses as alive ``localhost`` records (blocking)."""
        hosts: dict[str, Host] = {}
        try:
            addrs = psutil.net_if_addrs()
            stats = psutil.net_if_stats()
        except Exception as e:
            logger.debug(f"Failed to enumerate interfaces: {e}")
            return hosts

        for ifname, addresses in addrs.items():
            st = stats.get(ifname)
            if not st or not st.isup:
                continue

            mac = ""
            for addr in addresses:
                if addr.family == psutil.AF_LINK and addr.address:
                    mac = normalize_mac(addr.address)
                    break

            for addr in addresses:
                if addr.family != socket.AF_INET or not addr.address:
                    continue
                try:
                    if ipaddress.IPv4Address(addr.address).is_loopback:
                        continue
                except ValueError:
                    continue

                hosts[addr.address] = Host(
                    ip=addr.address,
                    hostname="localhost",
                    mac=mac,
                    vendor=self.vendors.lookup(mac) if self.vendors and mac else "",
                    is_alive=True,
                )
                logger.debug(f"Local interface {ifname}: {addr.address}")

        return hosts
