"""Tests for the address table reader."""

import asyncio

from netrecon.services.address_table import AddressTableReader, parse_arp_table
from netrecon.services.commands import CommandError
from netrecon.services.vendors import VendorLookup

WINDOWS_OUTPUT = """
Interface: 192.168.1.10 --- 0x4
  Internet Address      Physical Address      Type
  192.168.1.1           00-50-56-c0-00-08     dynamic
  192.168.1.20          b8-27-eb-12-34-56     dynamic
  192.168.1.255         ff-ff-ff-ff-ff-ff     static
  224.0.0.22            01-00-5e-00-00-16     static
"""

MACOS_OUTPUT = """\
router.lan (192.168.1.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]
? (192.168.1.30) at (incomplete) on en0 ifscope [ethernet]
? (192.168.1.40) at aa:bb:cc:dd:ee:ff on en0 ifscope [ethernet]
? (192.168.1.255) at ff:ff:ff:ff:ff:ff on en0 ifscope [ethernet]
"""

LINUX_OUTPUT = """\
_gateway (10.0.0.1) at 00:0c:29:aa:bb:cc [ether] on eth0
? (10.0.0.7) at <incomplete> on eth0
"""


class TestParseArpTable:
    """Tests for parse_arp_table."""

    def test_windows(self):
        hosts = parse_arp_table(WINDOWS_OUTPUT, platform="windows")
        assert set(hosts) == {"192.168.1.1", "192.168.1.20", "224.0.0.22"}
        assert hosts["192.168.1.1"].mac == "00:50:56:c0:00:08"
        assert hosts["192.168.1.1"].is_alive is True

    def test_macos_pads_octets(self):
        hosts = parse_arp_table(MACOS_OUTPUT, platform="darwin")
        assert set(hosts) == {"192.168.1.1", "192.168.1.40"}
        assert hosts["192.168.1.1"].mac == "00:50:56:c0:00:08"

    def test_linux(self):
        hosts = parse_arp_table(LINUX_OUTPUT, platform="linux")
        assert list(hosts) == ["10.0.0.1"]
        assert hosts["10.0.0.1"].mac == "00:0c:29:aa:bb:cc"

    def test_vendor_lookup(self):
        hosts = parse_arp_table(LINUX_OUTPUT, platform="linux", vendors=VendorLookup())
        assert hosts["10.0.0.1"].vendor == "VMware"

    def test_garbage(self):
        assert parse_arp_table("no entries\n", platform="linux") == {}


class TestAddressTableReader:
    """Tests for AddressTableReader."""

    def test_read(self, make_runner):
        runner = make_runner({"arp -a": LINUX_OUTPUT})
        reader = AddressTableReader(runner, platform="linux")
        hosts = asyncio.run(reader.read())
        assert "10.0.0.1" in hosts
        assert runner.calls == [["arp", "-a"]]

    def test_command_failure_gives_empty_table(self, make_runner):
        runner = make_runner({"arp": CommandError("arp timed out")})
        reader = AddressTableReader(runner, platform="linux")
        assert asyncio.run(reader.read()) == {}

    def test_missing_command(self, make_runner):
        reader = AddressTableReader(make_runner(), platform="linux")
        assert asyncio.run(reader.read()) == {}
