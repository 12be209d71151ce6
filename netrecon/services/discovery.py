"""Host discovery: address table, active probing and local interfaces."""

import logging
import threading
from collections.abc import Callable, Iterator

from ..models.config import ScanConfiguration, ScanType
from ..models.host import Host, address_sort_key
from .address_table import AddressTableReader
from .interfaces import LocalInterfaceEnumerator
from .pool import CancelToken, WorkerPool
from .prober import ActiveProber, resolve_hostname
from .range_parser import ADDRESS_TABLE_TARGET_CAP, GENERAL_TARGET_CAP, parse_target_range
from .vendors import VendorLookup

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class HostMap:
    """Hosts of one scan keyed by address, merged under a lock."""

    def __init__(self):
        self._hosts: dict[str, Host] = {}
        self._lock = threading.Lock()

    def add(self, host: Host) -> Host:
        """Insert ``host`` or merge it into the record already held."""
        with self._lock:
            existing = self._hosts.get(host.ip)
            if existing is None:
                self._hosts[host.ip] = host
                return host
            return existing.merge(host)

    def add_all(self, hosts: dict[str, Host]) -> int:
        """Merge many records; returns how many addresses were new."""
        before = len(self)
        for host in hosts.values():
            self.add(host)
        return len(self) - before

    def get(self, ip: str) -> Host | None:
        with self._lock:
            return self._hosts.get(ip)

    def hosts(self) -> list[Host]:
        """Snapshot of all hosts sorted by address."""
        with self._lock:
            return sorted(self._hosts.values(), key=lambda h: address_sort_key(h.ip))

    def __contains__(self, ip: object) -> bool:
        with self._lock:
            return ip in self._hosts

    def __len__(self) -> int:
        with self._lock:
            return len(self._hosts)

    def __iter__(self) -> Iterator[Host]:
        return iter(self.hosts())


def _report(progress: ProgressCallback | None, message: str) -> None:
    logger.info(message)
    if progress:
        progress(message)


class HostDiscoveryCoordinator:
    """Runs the discovery strategies and merges what they find.

    The primary path reads the address table, probes the targets and
    backfills MACs from a second table read. If it fails, a plain ping
    sweep over the target list takes over so discovery never ends in an
    error. Full scans add a supplementary sweep for anything missed.
    """

    def __init__(
        self,
        table_reader: AddressTableReader,
        active_prober: ActiveProber,
        interfaces: LocalInterfaceEnumerator,
        dns_timeout: float = 1.0,
        vendors: VendorLookup | None = None,
    ):
        self.table_reader = table_reader
        self.active_prober = active_prober
        self.interfaces = interfaces
        self.dns_timeout = dns_timeout
        self.vendors = vendors

    async def discover(
        self,
        config: ScanConfiguration,
        pool: WorkerPool,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
        hosts: HostMap | None = None,
    ) -> HostMap:
        """Discover live hosts for ``config.target_range``.

        Pass ``hosts`` to have partial results land in a map the caller
        already holds (used by the orchestrator for cancellation).

        Raises:
            InvalidTargetError: the target range cannot be parsed.
        """
        hosts = hosts if hosts is not None else HostMap()
        targets = parse_target_range(config.target_range, GENERAL_TARGET_CAP)

        try:
            await self._address_table_discovery(config, hosts, pool, cancel, progress)
        except Exception as e:
            logger.warning(f"Address table discovery failed, falling back to ping sweep: {e}")
            _report(progress, "Address table scan failed, using ping sweep fallback...")
            await self._ping_sweep(targets, config, hosts, pool, cancel, progress)
        else:
            if config.scan_type == ScanType.FULL_SCAN and not self._cancelled(cancel):
                missed = [ip for ip in targets if ip not in hosts]
                _report(progress, f"Performing supplementary ping sweep of {len(missed)} addresses...")
                await self._ping_sweep(missed, config, hosts, pool, cancel, progress)

        if not self._cancelled(cancel):
            await self._add_local_interfaces(hosts, pool, progress)

        if self.vendors is not None and self.vendors.online and not self._cancelled(cancel):
            await self._resolve_missing_vendors(hosts, cancel)

        if config.resolve_hostnames and not self._cancelled(cancel):
            await self._resolve_missing_hostnames(hosts, pool, cancel)

        _report(progress, f"Host discovery completed. Found {len(hosts)} total devices")
        return hosts

    @staticmethod
    def _cancelled(cancel: CancelToken | None) -> bool:
        return cancel is not None and cancel.cancelled

    async def _address_table_discovery(
        self,
        config: ScanConfiguration,
        hosts: HostMap,
        pool: WorkerPool,
        cancel: CancelToken | None,
        progress: ProgressCallback | None,
    ) -> None:
        _report(progress, "Starting address table discovery...")
        table = await self.table_reader.read()
        hosts.add_all(table)
        _report(progress, f"Found {len(table)} devices in address table")

        if self._cancelled(cancel):
            return

        targets = parse_target_range(config.target_range, ADDRESS_TABLE_TARGET_CAP)
        _report(progress, f"Performing active scan of {len(targets)} addresses...")
        probed = await self.active_prober.sweep(
            targets,
            pool,
            config.timeout_ms,
            resolve_hostnames=config.resolve_hostnames,
            cancel=cancel,
            progress=progress,
            backfill=True,
        )
        new = hosts.add_all(probed)
        _report(progress, f"Active scan found {len(probed)} devices ({new} new)")

    async def _ping_sweep(
        self,
        targets: list[str],
        config: ScanConfiguration,
        hosts: HostMap,
        pool: WorkerPool,
        cancel: CancelToken | None,
        progress: ProgressCallback | None,
    ) -> None:
        if not targets:
            return
        found = await self.active_prober.sweep(
            targets,
            pool,
            config.timeout_ms,
            resolve_hostnames=config.resolve_hostnames,
            cancel=cancel,
            progress=progress,
            backfill=False,
        )
        new = hosts.add_all(found)
        _report(progress, f"Ping sweep found {len(found)} devices ({new} new), total {len(hosts)}")

    async def _add_local_interfaces(
        self,
        hosts: HostMap,
        pool: WorkerPool,
        progress: ProgressCallback | None,
    ) -> None:
        try:
            local = await pool.run_blocking(self.interfaces.enumerate)
        except Exception as e:
            logger.debug(f"Local interface enumeration failed: {e}")
            return

        for ip, host in local.items():
            if ip not in hosts and progress:
                progress(f"Added local interface: {ip}")
            hosts.add(host)

    async def _resolve_missing_vendors(self, hosts: HostMap, cancel: CancelToken | None) -> None:
        for host in hosts.hosts():
            if self._cancelled(cancel):
                return
            if host.vendor or not host.mac:
                continue
            vendor = await self.vendors.resolve(host.mac)
            if vendor:
                hosts.add(Host(ip=host.ip, vendor=vendor))

    async def _resolve_missing_hostnames(
        self,
        hosts: HostMap,
        pool: WorkerPool,
        cancel: CancelToken | None,
    ) -> None:
        unnamed = [h for h in hosts.hosts() if not h.hostname]
        if not unnamed:
            return

        async def resolve_one(host: Host) -> None:
            name = await resolve_hostname(host.ip, pool, self.dns_timeout)
            if name:
                hosts.add(Host(ip=host.ip, hostname=name))

        await pool.map(resolve_one, unnamed, cancel)
