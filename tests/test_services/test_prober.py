"""Tests for reachability probing and the active sweep."""

import asyncio
import socket

import pytest

from netrecon.models.host import Host
from netrecon.services.commands import CommandError, CommandOutput
from netrecon.services.pool import CancelToken, WorkerPool
from netrecon.services.prober import (
    ActiveProber,
    ReachabilityProber,
    build_ping_command,
    parse_ping_time,
    resolve_hostname,
)

LINUX_REPLY = """\
PING 10.0.0.1 (10.0.0.1) 56(84) bytes of data.
64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=12.6 ms
"""

WINDOWS_UNREACHABLE = """\
Pinging 10.0.0.9 with 32 bytes of data:
Reply from 10.0.0.10: Destination host unreachable.
"""


class FakeProber:
    """Answers for a fixed set of addresses."""

    def __init__(self, latencies: dict[str, int]):
        self.latencies = latencies
        self.probed: list[str] = []

    async def probe(self, ip: str, timeout_ms: int) -> int | None:
        self.probed.append(ip)
        return self.latencies.get(ip)


class FakeTableReader:
    def __init__(self, hosts: dict[str, Host]):
        self.hosts = hosts

    async def read(self) -> dict[str, Host]:
        return {ip: host.model_copy(deep=True) for ip, host in self.hosts.items()}


class TestPingCommand:
    """Tests for build_ping_command and parse_ping_time."""

    def test_windows(self):
        assert build_ping_command("10.0.0.1", 1500, "windows") == ["ping", "-n", "1", "-w", "1500", "10.0.0.1"]

    def test_macos(self):
        assert build_ping_command("10.0.0.1", 1500, "darwin") == ["ping", "-c", "1", "-W", "1500", "10.0.0.1"]

    def test_linux_rounds_up_to_seconds(self):
        assert build_ping_command("10.0.0.1", 1500, "linux") == ["ping", "-c", "1", "-W", "2", "10.0.0.1"]
        assert build_ping_command("10.0.0.1", 100, "linux")[4] == "1"

    @pytest.mark.parametrize(
        "output,expected",
        [
            (LINUX_REPLY, 13),
            ("Reply from 10.0.0.1: bytes=32 time<1ms TTL=64", 1),
            ("Reply from 10.0.0.1: bytes=32 time=4ms TTL=64", 4),
            ("Request timed out.", None),
        ],
    )
    def test_parse_time(self, output, expected):
        assert parse_ping_time(output) == expected


class TestReachabilityProber:
    """Tests for ReachabilityProber."""

    def test_icmp_reply(self, make_runner):
        runner = make_runner({"ping": LINUX_REPLY})
        prober = ReachabilityProber(runner, platform="linux", tcp_fallback=False)
        assert asyncio.run(prober.probe("10.0.0.1", 1000)) == 13

    def test_nonzero_exit_is_no_response(self, make_runner):
        runner = make_runner({"ping": CommandOutput(returncode=1, stdout="")})
        prober = ReachabilityProber(runner, platform="linux", tcp_fallback=False)
        assert asyncio.run(prober.probe("10.0.0.9", 1000)) is None

    def test_windows_unreachable_is_no_response(self, make_runner):
        runner = make_runner({"ping": WINDOWS_UNREACHABLE})
        prober = ReachabilityProber(runner, platform="windows", tcp_fallback=False)
        assert asyncio.run(prober.probe("10.0.0.9", 1000)) is None

    def test_missing_ping_is_no_response(self, make_runner):
        runner = make_runner({"ping": CommandError("ping not found in PATH")})
        prober = ReachabilityProber(runner, platform="linux", tcp_fallback=False)
        assert asyncio.run(prober.probe("10.0.0.9", 1000)) is None

    def test_attempts_share_one_timeout(self, monkeypatch):
        """Test that an unanswered echo plus a silent fallback stay within the timeout."""

        class SilentRunner:
            def __init__(self):
                self.timeouts = []

            async def run(self, cmd, timeout=5.0):
                self.timeouts.append(timeout)
                await asyncio.sleep(timeout)
                raise CommandError(f"{cmd[0]} timed out after {timeout}s")

        async def hang(*args, **kwargs):
            await asyncio.sleep(60)

        monkeypatch.setattr(asyncio, "open_connection", hang)
        runner = SilentRunner()
        prober = ReachabilityProber(runner, platform="linux")

        async def timed():
            loop = asyncio.get_running_loop()
            start = loop.time()
            latency = await prober.probe("10.0.0.9", 400)
            return latency, loop.time() - start

        latency, elapsed = asyncio.run(timed())
        assert latency is None
        assert runner.timeouts == [0.2]
        assert elapsed < 0.4 + 0.2

    def test_echo_gets_whole_budget_without_fallback(self):
        class RecordingRunner:
            def __init__(self):
                self.timeouts = []

            async def run(self, cmd, timeout=5.0):
                self.timeouts.append(timeout)
                return CommandOutput(returncode=0, stdout=LINUX_REPLY)

        runner = RecordingRunner()
        prober = ReachabilityProber(runner, platform="linux", tcp_fallback=False)
        assert asyncio.run(prober.probe("10.0.0.1", 1000)) == 13
        assert runner.timeouts == [1.0]

    def test_tcp_fallback_on_loopback(self, make_runner):
        """Test a refused or accepted connection on loopback proves liveness."""
        prober = ReachabilityProber(make_runner(), platform="linux")
        latency = asyncio.run(prober.probe("127.0.0.1", 2000))
        assert latency is not None
        assert latency >= 0


class TestResolveHostname:
    """Tests for resolve_hostname."""

    def _resolve(self, ip):
        async def go():
            pool = WorkerPool(2)
            try:
                return await resolve_hostname(ip, pool, timeout=1.0)
            finally:
                pool.shutdown()

        return asyncio.run(go())

    def test_resolved(self, monkeypatch):
        monkeypatch.setattr(socket, "gethostbyaddr", lambda ip: ("nas.lan", [], [ip]))
        assert self._resolve("10.0.0.5") == "nas.lan"

    def test_name_equal_to_address_ignored(self, monkeypatch):
        monkeypatch.setattr(socket, "gethostbyaddr", lambda ip: (ip, [], [ip]))
        assert self._resolve("10.0.0.5") == ""

    def test_no_reverse_dns(self, monkeypatch):
        def fail(ip):
            raise socket.herror(1, "Unknown host")

        monkeypatch.setattr(socket, "gethostbyaddr", fail)
        assert self._resolve("10.0.0.5") == ""


class TestActiveProber:
    """Tests for ActiveProber.sweep."""

    def _sweep(self, active, targets, **kwargs):
        async def go():
            pool = WorkerPool(4)
            try:
                return await active.sweep(targets, pool, 1000, resolve_hostnames=False, **kwargs)
            finally:
                pool.shutdown()

        return asyncio.run(go())

    def test_records_responders(self):
        prober = FakeProber({"10.0.0.1": 3, "10.0.0.3": 7})
        found = self._sweep(ActiveProber(prober), ["10.0.0.1", "10.0.0.2", "10.0.0.3"])
        assert set(found) == {"10.0.0.1", "10.0.0.3"}
        assert found["10.0.0.3"].response_time_ms == 7
        assert found["10.0.0.3"].is_alive is True

    def test_progress_messages(self):
        messages = []
        prober = FakeProber({"10.0.0.1": 3})
        self._sweep(ActiveProber(prober), ["10.0.0.1"], progress=messages.append)
        assert messages == ["Found host: 10.0.0.1 [3ms]"]

    def test_backfills_mac_from_table(self):
        table = FakeTableReader({"10.0.0.1": Host(ip="10.0.0.1", mac="00:50:56:c0:00:08", is_alive=True)})
        prober = FakeProber({"10.0.0.1": 3})
        found = self._sweep(ActiveProber(prober, table_reader=table), ["10.0.0.1"])
        assert found["10.0.0.1"].mac == "00:50:56:c0:00:08"
        assert found["10.0.0.1"].response_time_ms == 3

    def test_no_backfill_when_disabled(self):
        table = FakeTableReader({"10.0.0.1": Host(ip="10.0.0.1", mac="00:50:56:c0:00:08")})
        prober = FakeProber({"10.0.0.1": 3})
        found = self._sweep(ActiveProber(prober, table_reader=table), ["10.0.0.1"], backfill=False)
        assert found["10.0.0.1"].mac == ""

    def test_cancelled_sweep_dispatches_nothing(self):
        cancel = CancelToken()
        cancel.cancel()
        prober = FakeProber({"10.0.0.1": 3})
        found = self._sweep(ActiveProber(prober), ["10.0.0.1", "10.0.0.2"], cancel=cancel)
        assert found == {}
        assert prober.probed == []
