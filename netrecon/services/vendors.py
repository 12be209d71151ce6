"""MAC address normalization and vendor lookup."""

import json
import logging
import re
from importlib import resources

from mac_vendor_lookup import AsyncMacLookup

logger = logging.getLogger(__name__)

BROADCAST_MAC = "ff:ff:ff:ff:ff:ff"

_MAC_RE = re.compile(r"^[0-9a-f]{2}([:-][0-9a-f]{2}){5}$", re.IGNORECASE)


def normalize_mac(mac: str) -> str:
    """Return ``mac`` as lower-case colon-separated hex, or "" if invalid."""
    mac = mac.strip()
    if not _MAC_RE.match(mac):
        return ""
    return mac.replace("-", ":").lower()


def _load_oui_table() -> dict[str, str]:
    data = resources.files("netrecon").joinpath("data", "oui_vendors.json").read_text(encoding="utf-8")
    return {prefix.upper(): vendor for prefix, vendor in json.loads(data).items()}


class VendorLookup:
    """Resolve a vendor label from the first three octets of a MAC address.

    :meth:`lookup` only consults the bundled OUI table and is safe to call
    anywhere. With ``online=True``, :meth:`resolve` falls through to the
    mac-vendor-lookup database on a miss, which downloads the IEEE
    registry on first use.
    """

    def __init__(self, online: bool = False):
        self.online = online
        self._table = _load_oui_table()
        self._mac_lookup: AsyncMacLookup | None = None
        self._mac_lookup_initialized = False

    def __len__(self) -> int:
        return len(self._table)

    async def _get_mac_lookup(self) -> AsyncMacLookup | None:
        if self._mac_lookup_initialized:
            return self._mac_lookup

        self._mac_lookup_initialized = True
        try:
            mac_lookup = AsyncMacLookup()
            await mac_lookup.update_vendors()
            self._mac_lookup = mac_lookup
        except Exception as e:
            logger.debug(f"mac-vendor-lookup unavailable: {e}")
            self._mac_lookup = None
        return self._mac_lookup

    def lookup(self, mac: str) -> str:
        """Return the bundled-table vendor for ``mac`` or "" when unknown."""
        mac = normalize_mac(mac)
        if not mac or mac == BROADCAST_MAC:
            return ""
        return self._table.get(mac[:8].upper(), "")

    async def resolve(self, mac: str) -> str:
        """Like :meth:`lookup`, using the online database for misses."""
        vendor = self.lookup(mac)
        mac = normalize_mac(mac)
        if vendor or not self.online or not mac or mac == BROADCAST_MAC:
            return vendor

        mac_lookup = await self._get_mac_lookup()
        if mac_lookup is None:
            return ""
        try:
            return await mac_lookup.lookup(mac)
        except Exception:
            logger.debug(f"No vendor registered for {mac}")
            return ""
