"""Scan pipeline: parsing, discovery, port scan, analysis and topology."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from ..models.config import EngineSettings, ScanConfiguration, ScanType
from ..models.host import Host
from ..models.scan_result import SCAN_PHASES, GatewayInfo, ScanResult, ScanState
from .address_table import AddressTableReader
from .commands import CommandRunner
from .discovery import HostDiscoveryCoordinator, HostMap
from .fingerprint import ServiceFingerprinter
from .gateway import GatewayDetector
from .interfaces import LocalInterfaceEnumerator
from .os_inference import infer_os
from .pool import CancelToken, WorkerPool
from .port_scanner import PortScanner
from .prober import ActiveProber, ReachabilityProber
from .range_parser import GENERAL_TARGET_CAP, InvalidTargetError, parse_target_range
from .vendors import VendorLookup
from .vulnerability import apply_assessment

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
PhaseCallback = Callable[[ScanState, float], None]

# Topology mapping only traces a few interesting hosts
MAX_TRACED_HOSTS = 3


class ScanCancelled(Exception):
    """Raised internally when the cancel token is set between phases."""


class ScanOrchestrator:
    """Runs one scan at a time through the full pipeline.

    Every collaborator can be injected; the defaults are built from
    :class:`EngineSettings`. Each call to :meth:`run` uses a fresh worker
    pool, so nothing is shared between scans.
    """

    def __init__(
        self,
        engine: EngineSettings | None = None,
        runner: CommandRunner | None = None,
        discovery: HostDiscoveryCoordinator | None = None,
        port_scanner: PortScanner | None = None,
        fingerprinter: ServiceFingerprinter | None = None,
        gateway: GatewayDetector | None = None,
    ):
        self.engine = engine or EngineSettings()
        self.runner = runner or CommandRunner()
        self._vendors: VendorLookup | None = None

        if discovery is None:
            table_reader = AddressTableReader(self.runner, self.vendors)
            discovery = HostDiscoveryCoordinator(
                table_reader=table_reader,
                active_prober=ActiveProber(
                    ReachabilityProber(self.runner),
                    table_reader=table_reader,
                    dns_timeout=self.engine.dns_timeout_seconds,
                ),
                interfaces=LocalInterfaceEnumerator(self.vendors),
                vendors=self.vendors,
                dns_timeout=self.engine.dns_timeout_seconds,
            )
        self.discovery = discovery
        self.port_scanner = port_scanner or PortScanner()
        self._fingerprinter = fingerprinter
        self.gateway = gateway or GatewayDetector(
            self.runner,
            http_timeout=self.engine.external_ip_timeout_seconds,
            external_ip_url=self.engine.external_ip_url,
            traceroute_target=self.engine.traceroute_target,
            max_hops=self.engine.traceroute_max_hops,
        )

    @property
    def vendors(self) -> VendorLookup:
        if self._vendors is None:
            self._vendors = VendorLookup(online=self.engine.online_vendor_lookup)
        return self._vendors

    @property
    def fingerprinter(self) -> ServiceFingerprinter:
        if self._fingerprinter is None:
            self._fingerprinter = ServiceFingerprinter()
        return self._fingerprinter

    def scan(
        self,
        config: ScanConfiguration,
        progress: ProgressCallback | None = None,
        on_phase: PhaseCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ScanResult:
        """Blocking wrapper around :meth:`run`."""
        return asyncio.run(self.run(config, progress, on_phase, cancel))

    async def run(
        self,
        config: ScanConfiguration,
        progress: ProgressCallback | None = None,
        on_phase: PhaseCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ScanResult:
        """Run a scan and return its result.

        Never raises for scan failures: an invalid target range or an
        unexpected error yields a FAILED result, and cancellation yields a
        CANCELLED result carrying whatever hosts were found so far.
        """
        cancel = cancel or CancelToken()
        start_time = datetime.now()
        result = ScanResult(target_range=config.target_range, scan_time=start_time)
        hosts = HostMap()
        pool = WorkerPool(config.threads)
        gateway_task: asyncio.Task[GatewayInfo] | None = None

        def report(message: str) -> None:
            logger.info(message)
            if progress:
                progress(message)

        def enter(state: ScanState, active: bool = True) -> bool:
            """Advance progress to ``state``; skipped phases keep the current state."""
            if cancel.cancelled:
                raise ScanCancelled()
            if active:
                result.state = state
            result.progress = SCAN_PHASES.index(state) / len(SCAN_PHASES)
            if on_phase:
                on_phase(result.state, result.progress)
            return active

        try:
            enter(ScanState.PARSING)
            report(f"Starting {config.scan_type.value} of {config.target_range}")
            targets = parse_target_range(config.target_range, GENERAL_TARGET_CAP)

            enter(ScanState.DISCOVERING)
            if config.detect_gateway:
                gateway_task = asyncio.create_task(self.gateway.detect())
            if config.scan_type == ScanType.PORT_SCAN:
                report(f"Skipping discovery, scanning {len(targets)} targets directly")
                for ip in targets:
                    hosts.add(Host(ip=ip, is_alive=True))
            else:
                await self.discovery.discover(config, pool, cancel, progress, hosts=hosts)
            report(f"Found {len(hosts)} hosts")

            if enter(ScanState.PORT_SCANNING, config.requires_port_scan and len(hosts) > 0):
                report("Performing port scanning...")
                await self.port_scanner.scan_hosts(hosts.hosts(), config, pool, cancel, progress)

            if enter(ScanState.SERVICE_DETECTING, config.detect_services and len(hosts) > 0):
                report("Fingerprinting services...")
                await self.fingerprinter.fingerprint_hosts(
                    hosts.hosts(), pool, config.grab_banners, cancel, progress
                )

            if enter(ScanState.OS_DETECTING, config.detect_os and len(hosts) > 0):
                report("Performing OS detection...")
                self._detect_os(hosts, cancel, progress)

            if enter(ScanState.VULN_SCANNING, config.assess_vulnerabilities and len(hosts) > 0):
                report("Scanning for vulnerabilities...")
                self._assess_vulnerabilities(hosts, cancel, progress)

            traces = config.perform_traceroute and len(hosts) > 0
            enter(ScanState.TOPOLOGY_MAPPING, gateway_task is not None or traces)
            if gateway_task is not None:
                result.gateway = await gateway_task
                gateway_task = None
                report(f"Gateway detected: {result.gateway.default_gateway or 'none'}")
            if traces:
                await self._map_topology(hosts, cancel, report)

            if cancel.cancelled:
                raise ScanCancelled()
            result.state = ScanState.COMPLETED
            result.progress = 1.0
            if on_phase:
                on_phase(ScanState.COMPLETED, result.progress)
            report("Network analysis completed successfully")

        except ScanCancelled:
            result.state = ScanState.CANCELLED
            report("Scan cancelled")
        except InvalidTargetError as e:
            result.state = ScanState.FAILED
            result.error = str(e)
            report(f"Analysis failed: {e}")
        except Exception as e:
            logger.error(f"Scan of {config.target_range} failed: {e}", exc_info=True)
            result.state = ScanState.FAILED
            result.error = str(e)
            report(f"Analysis failed: {e}")
        finally:
            if gateway_task is not None:
                gateway_task.cancel()
                await asyncio.gather(gateway_task, return_exceptions=True)
            pool.shutdown()

        result.hosts = hosts.hosts()
        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        return result

    def _detect_os(self, hosts: HostMap, cancel: CancelToken, progress: ProgressCallback | None) -> None:
        for host in hosts.hosts():
            if cancel.cancelled:
                return
            host.os_guess = infer_os(host.open_ports)
            if progress:
                progress(f"OS detected for {host.ip}: {host.os_guess}")

    def _assess_vulnerabilities(
        self, hosts: HostMap, cancel: CancelToken, progress: ProgressCallback | None
    ) -> None:
        for host in hosts.hosts():
            if cancel.cancelled:
                return
            assessment = apply_assessment(host)
            if progress:
                for description in sorted(assessment.vulnerabilities):
                    progress(f"Vulnerability found on {host.ip}: {description}")

    async def _map_topology(self, hosts: HostMap, cancel: CancelToken, report: ProgressCallback) -> None:
        report("Mapping network topology (quick scan)...")
        key_hosts = [h for h in hosts.hosts() if len(h.open_ports) > 3 or h.ip.endswith(".1")]
        for host in key_hosts[:MAX_TRACED_HOSTS]:
            if cancel.cancelled:
                return
            report(f"Tracing route to {host.ip}...")
            path = await self.gateway.quick_traceroute(host.ip)
            if path:
                host.network_path = path
        report("Network topology mapping completed")
