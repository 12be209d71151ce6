"""TCP/UDP port scanning with an optional scapy SYN probe."""

import asyncio
import logging
import os
import socket
from collections.abc import Callable, Iterable

from ..models.config import PortScanTechnique, ScanConfiguration
from ..models.host import Host
from .pool import CancelToken, WorkerPool

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

# UDP services probed by the comprehensive technique
COMPREHENSIVE_UDP_PORTS = (53, 67, 68, 69, 123, 161, 162)


async def tcp_connect(ip: str, port: int, timeout: float) -> bool:
    """Return True if a TCP connection to ``ip:port`` completes within ``timeout``."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout=timeout)
    except (TimeoutError, OSError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def udp_probe(ip: str, port: int, timeout: float) -> bool:
    """Send an empty datagram and report whether anything came back (blocking).

    A reply within ``timeout`` means open. Silence is NOT proof that the
    port is closed: most UDP services ignore an empty datagram, and
    firewalls drop it, so a False result only means "no answer".
    """
    family = socket.AF_INET6 if ":" in ip else socket.AF_INET
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        sock.settimeout(timeout)
        try:
            sock.sendto(b"", (ip, port))
            sock.recvfrom(1024)
        except (TimeoutError, OSError):
            return False
    return True


class SynProbe:
    """Half-open TCP probe built on scapy.

    Needs scapy and raw-socket privileges; use :attr:`available` before
    calling :meth:`probe`.
    """

    def __init__(self):
        self._scapy_available = self._check_scapy()
        self._has_privileges = self._check_privileges()

    def _check_scapy(self) -> bool:
        """Check if scapy can be imported."""
        try:
            from scapy.all import conf  # noqa: F401

            return True
        except ImportError:
            logger.warning("scapy not installed - SYN scanning disabled")
            return False
        except Exception as e:
            logger.warning(f"scapy error: {e}")
            return False

    def _check_privileges(self) -> bool:
        """Check for root privileges needed by raw sockets."""
        if hasattr(os, "geteuid"):
            return os.geteuid() == 0
        return True

    @property
    def available(self) -> bool:
        return self._scapy_available and self._has_privileges

    def probe(self, ip: str, port: int, timeout: float) -> bool:
        """Send a SYN and report whether a SYN-ACK came back (blocking)."""
        from scapy.all import IP, TCP, conf, send, sr1

        conf.verb = 0
        reply = sr1(IP(dst=ip) / TCP(dport=port, flags="S"), timeout=timeout, verbose=False)
        if reply is None or not reply.haslayer(TCP):
            return False

        flags = int(reply[TCP].flags)
        if flags & 0x12 == 0x12:
            # Tear down the half-open connection
            send(IP(dst=ip) / TCP(dport=port, flags="R", seq=reply[TCP].ack), verbose=False)
            return True
        return False


class PortScanner:
    """Scans the configured ports of every host, one pool task per host."""

    def __init__(self, syn_probe: SynProbe | None = None):
        self._syn_probe = syn_probe

    @property
    def syn_probe(self) -> SynProbe:
        if self._syn_probe is None:
            self._syn_probe = SynProbe()
        return self._syn_probe

    async def scan_hosts(
        self,
        hosts: Iterable[Host],
        config: ScanConfiguration,
        pool: WorkerPool,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Record open ports on each host in place."""
        technique = config.port_technique
        if technique == PortScanTechnique.TCP_SYN and not self.syn_probe.available:
            message = "SYN scan requires scapy and root privileges, using TCP connect scan"
            logger.warning(message)
            if progress:
                progress(message)
            technique = PortScanTechnique.TCP_CONNECT

        async def scan_one(host: Host) -> None:
            await self.scan_host(host, config, technique, pool, cancel, progress)

        await pool.map(scan_one, list(hosts), cancel)

    async def scan_host(
        self,
        host: Host,
        config: ScanConfiguration,
        technique: PortScanTechnique,
        pool: WorkerPool,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Scan one host's ports sequentially."""
        timeout = config.timeout_seconds

        tcp_ports = () if technique == PortScanTechnique.UDP else config.ports

        for port in tcp_ports:
            if cancel is not None and cancel.cancelled:
                return
            if await self._probe_tcp(host.ip, port, timeout, technique, pool):
                host.add_open_port(port)
                if progress:
                    progress(f"Open TCP port found: {host.ip}:{port}")

        if technique == PortScanTechnique.UDP:
            udp_ports: Iterable[int] = config.ports
        elif technique == PortScanTechnique.COMPREHENSIVE:
            udp_ports = COMPREHENSIVE_UDP_PORTS
        else:
            udp_ports = ()

        for port in udp_ports:
            if cancel is not None and cancel.cancelled:
                return
            try:
                is_open = await pool.run_blocking(udp_probe, host.ip, port, timeout)
            except Exception as e:
                logger.debug(f"UDP probe {host.ip}:{port} failed: {e}")
                is_open = False
            if is_open:
                host.add_open_port(port)
                if progress:
                    progress(f"Open UDP port found: {host.ip}:{port}")

        if progress:
            progress(f"Port scan complete for {host.ip}")

    async def _probe_tcp(
        self,
        ip: str,
        port: int,
        timeout: float,
        technique: PortScanTechnique,
        pool: WorkerPool,
    ) -> bool:
        try:
            if technique == PortScanTechnique.TCP_SYN:
                return await pool.run_blocking(self.syn_probe.probe, ip, port, timeout)
            return await tcp_connect(ip, port, timeout)
        except Exception as e:
            logger.debug(f"TCP probe {ip}:{port} failed: {e}")
            return False
