"""Active reachability probing (ping sweep) with address table backfill."""

import asyncio
import logging
import math
import re
import socket
import time
from collections.abc import Callable

from ..models.host import Host
from .address_table import AddressTableReader
from .commands import CommandError, CommandRunner, current_platform
from .pool import CancelToken, WorkerPool

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

# A refused connection proves the host is up just as well as an accepted one
TCP_ECHO_PORTS = (7, 80, 443, 22, 445, 139)

_PING_TIME = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)


def build_ping_command(ip: str, timeout_ms: int, platform: str) -> list[str]:
    """Single-echo ping command for the platform."""
    if platform == "windows":
        return ["ping", "-n", "1", "-w", str(timeout_ms), ip]
    if platform == "darwin":
        # macOS -W is in milliseconds
        return ["ping", "-c", "1", "-W", str(timeout_ms), ip]
    return ["ping", "-c", "1", "-W", str(max(1, math.ceil(timeout_ms / 1000))), ip]


def parse_ping_time(output: str) -> int | None:
    """Extract the round-trip time in ms from ping output."""
    match = _PING_TIME.search(output)
    if not match:
        return None
    return int(round(float(match.group(1))))


class ReachabilityProber:
    """Answers "is this address reachable?" within a timeout.

    Tries an ICMP echo through the platform ``ping`` and, if that gets no
    answer or cannot run, a TCP echo probe against a few common ports.
    """

    def __init__(
        self,
        runner: CommandRunner,
        platform: str | None = None,
        tcp_fallback: bool = True,
    ):
        self.runner = runner
        self.platform = platform or current_platform()
        self.tcp_fallback = tcp_fallback

    async def probe(self, ip: str, timeout_ms: int) -> int | None:
        """Return the measured latency in ms, or None if there was no response.

        Both attempts share one ``timeout_ms`` budget: the echo gets half of
        it when the TCP fallback is enabled, and the fallback gets whatever
        is left.
        """
        deadline = time.monotonic() + timeout_ms / 1000.0
        icmp_budget = timeout_ms // 2 if self.tcp_fallback else timeout_ms
        latency = await self._icmp_probe(ip, max(1, icmp_budget))
        if latency is None and self.tcp_fallback:
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            if remaining_ms > 0:
                latency = await self._tcp_probe(ip, remaining_ms)
        return latency

    async def _icmp_probe(self, ip: str, timeout_ms: int) -> int | None:
        cmd = build_ping_command(ip, timeout_ms, self.platform)
        start = time.monotonic()
        try:
            output = await self.runner.run(cmd, timeout=timeout_ms / 1000.0)
        except CommandError as e:
            logger.debug(f"ICMP probe for {ip} unavailable: {e}")
            return None

        if output.returncode != 0:
            return None
        # Windows ping exits 0 on "Destination host unreachable"
        if "unreachable" in output.stdout.lower():
            return None

        elapsed = int((time.monotonic() - start) * 1000)
        measured = parse_ping_time(output.stdout)
        return measured if measured is not None else elapsed

    async def _tcp_probe(self, ip: str, timeout_ms: int) -> int | None:
        start = time.monotonic()

        async def knock(port: int) -> bool:
            try:
                _, writer = await asyncio.open_connection(ip, port)
            except ConnectionRefusedError:
                return True
            except OSError:
                return False
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return True

        tasks = [asyncio.ensure_future(knock(port)) for port in TCP_ECHO_PORTS]
        try:
            for next_done in asyncio.as_completed(tasks, timeout=timeout_ms / 1000.0):
                if await next_done:
                    return int((time.monotonic() - start) * 1000)
        except TimeoutError:
            pass
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return None


async def resolve_hostname(ip: str, pool: WorkerPool, timeout: float = 1.0) -> str:
    """Reverse-resolve ``ip``; returns "" when there is no usable name."""
    try:
        hostname, _, _ = await asyncio.wait_for(pool.run_blocking(socket.gethostbyaddr, ip), timeout=timeout)
    except TimeoutError:
        logger.debug(f"DNS lookup timeout for {ip}")
        return ""
    except (socket.herror, socket.gaierror):
        return ""  # No reverse DNS
    except Exception as e:
        logger.debug(f"DNS lookup error for {ip}: {e}")
        return ""
    return "" if hostname == ip else hostname


class ActiveProber:
    """Sweeps a target list and records every address that answers."""

    def __init__(
        self,
        prober: ReachabilityProber,
        table_reader: AddressTableReader | None = None,
        dns_timeout: float = 1.0,
    ):
        self.prober = prober
        self.table_reader = table_reader
        self.dns_timeout = dns_timeout

    async def sweep(
        self,
        targets: list[str],
        pool: WorkerPool,
        timeout_ms: int,
        resolve_hostnames: bool = True,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
        backfill: bool = True,
    ) -> dict[str, Host]:
        """Probe every target once through ``pool``.

        With ``backfill`` the address table is re-read afterwards, since many
        platforms only learn a neighbor's MAC after exchanging packets with it.
        """

        async def probe_one(ip: str) -> Host | None:
            latency = await self.prober.probe(ip, timeout_ms)
            if latency is None:
                return None

            host = Host(ip=ip, is_alive=True, response_time_ms=latency)
            if resolve_hostnames:
                host.hostname = await resolve_hostname(ip, pool, self.dns_timeout)
            if progress:
                name = f" ({host.hostname})" if host.hostname else ""
                progress(f"Found host: {ip}{name} [{latency}ms]")
            return host

        results = await pool.map(probe_one, targets, cancel)
        found = {host.ip: host for host in results if host is not None}

        if backfill and found and self.table_reader is not None:
            table = await self.table_reader.read()
            for ip, host in found.items():
                if ip in table:
                    host.merge(table[ip])

        return found
