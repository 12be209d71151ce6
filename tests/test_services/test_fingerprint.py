"""Tests for service fingerprinting."""

import asyncio

import pytest

from netrecon.models.host import Host
from netrecon.services.fingerprint import (
    UNKNOWN_SERVICE,
    ServiceFingerprinter,
    ServiceSignature,
    analyze_banner,
    classify_device,
    grab_banner,
    load_service_table,
)
from netrecon.services.pool import WorkerPool

SSH = ServiceSignature(name="SSH", banner="SSH-", version_pattern="OpenSSH|Dropbear")
HTTP = ServiceSignature(name="HTTP", banner="HTTP/", version_pattern="Apache|nginx|IIS")


async def _banner_server(greeting: bytes):
    async def handle(reader, writer):
        writer.write(greeting)
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    return server, server.sockets[0].getsockname()[1]


class TestServiceTable:
    """Tests for the bundled service table."""

    def test_known_ports(self):
        table = load_service_table()
        assert table[22].name == "SSH"
        assert table[80].name == "HTTP"
        assert table[445].name == "SMB"
        assert table[3306].version_pattern == "MySQL|MariaDB"

    def test_unknown_port(self):
        fingerprinter = ServiceFingerprinter()
        assert fingerprinter.service_name(22) == "SSH"
        assert fingerprinter.service_name(31337) == UNKNOWN_SERVICE


class TestAnalyzeBanner:
    """Tests for analyze_banner."""

    def test_version_match(self):
        assert analyze_banner(SSH, "SSH-2.0-OpenSSH_8.9p1 Ubuntu") == "SSH (OpenSSH)"

    def test_family_not_repeated(self):
        """Test that a version match naming the server family is not echoed."""
        banner = "HTTP/1.1 200 OK\nServer: Apache/2.4.57 (Debian)"
        assert analyze_banner(HTTP, banner) == "HTTP (Apache)"
        assert analyze_banner(HTTP, "HTTP/1.1 200 OK\nServer: nginx/1.24.0") == "HTTP (nginx)"

    def test_version_and_vendor_hint(self):
        banner = "HTTP/1.1 200 OK\nServer: Microsoft-IIS/10.0"
        assert analyze_banner(HTTP, banner) == "HTTP (IIS) - Microsoft"

    def test_vendor_hint_only(self):
        banner = "HTTP/1.1 200 OK\nServer: Microsoft-HTTPAPI/2.0"
        assert analyze_banner(HTTP, banner) == "HTTP - Microsoft"

    def test_empty_banner(self):
        assert analyze_banner(SSH, "") == "SSH"


class TestGrabBanner:
    """Tests for grab_banner."""

    def test_reads_greeting(self):
        async def go():
            server, port = await _banner_server(b"SSH-2.0-OpenSSH_9.6\r\n")
            try:
                return await grab_banner("127.0.0.1", port, timeout=1.0)
            finally:
                server.close()
                await server.wait_closed()

        assert asyncio.run(go()) == "SSH-2.0-OpenSSH_9.6"

    def test_reads_at_most_five_lines(self):
        async def go():
            server, port = await _banner_server(b"".join(f"line {i}\r\n".encode() for i in range(10)))
            try:
                return await grab_banner("127.0.0.1", port, timeout=1.0)
            finally:
                server.close()
                await server.wait_closed()

        assert asyncio.run(go()).splitlines() == [f"line {i}" for i in range(5)]

    def test_connection_failure_is_empty(self):
        async def go():
            server, port = await _banner_server(b"")
            server.close()
            await server.wait_closed()
            return await grab_banner("127.0.0.1", port, timeout=0.5)

        assert asyncio.run(go()) == ""


class TestServiceFingerprinter:
    """Tests for ServiceFingerprinter."""

    def test_identify_with_banner(self):
        async def go():
            server, port = await _banner_server(b"SSH-2.0-dropbear_2022.83\r\n")
            fingerprinter = ServiceFingerprinter(table={port: ServiceSignature("SSH", "SSH-", "OpenSSH|dropbear")})
            try:
                return await fingerprinter.identify("127.0.0.1", port)
            finally:
                server.close()
                await server.wait_closed()

        assert asyncio.run(go()) == "SSH (dropbear)"

    def test_identify_without_banners(self):
        fingerprinter = ServiceFingerprinter()
        assert asyncio.run(fingerprinter.identify("192.0.2.1", 22, grab_banners=False)) == "SSH"
        assert asyncio.run(fingerprinter.identify("192.0.2.1", 31337, grab_banners=False)) == UNKNOWN_SERVICE

    def test_fingerprint_hosts(self):
        host = Host(ip="192.0.2.1", open_ports={22, 445, 31337}, vendor="Apple")
        messages = []

        async def go():
            pool = WorkerPool(2)
            try:
                await ServiceFingerprinter().fingerprint_hosts(
                    [host], pool, grab_banners=False, progress=messages.append
                )
            finally:
                pool.shutdown()

        asyncio.run(go())
        assert host.services == {"SSH", "SMB", UNKNOWN_SERVICE}
        assert host.device_type == "Apple Device"
        assert "Service detected on 192.0.2.1:22 - SSH" in messages


class TestClassifyDevice:
    """Tests for classify_device."""

    @pytest.mark.parametrize(
        "host,expected",
        [
            (Host(ip="10.0.0.1", vendor="Cisco Systems"), "Network Equipment"),
            (Host(ip="10.0.0.2", hostname="office-printer"), "Printer"),
            (Host(ip="10.0.0.3", open_ports={9100}), "Printer"),
            (Host(ip="10.0.0.4", vendor="VMware"), "Virtual Machine"),
            (Host(ip="10.0.0.5", open_ports={3389, 445}), "Windows Host"),
            (Host(ip="10.0.0.6", open_ports={8080}), "Web Server"),
            (Host(ip="10.0.0.7", open_ports={22}), "SSH Server"),
            (Host(ip="10.0.0.254"), "Likely Gateway/Router"),
            (Host(ip="10.0.0.8"), ""),
        ],
    )
    def test_classification(self, host, expected):
        assert classify_device(host) == expected
