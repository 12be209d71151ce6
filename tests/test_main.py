"""Tests for command-line configuration handling."""

import pytest

from netrecon.__main__ import build_configuration, build_parser, print_summary
from netrecon.models.config import EXTENDED_PORTS, AppConfig, PortScanTechnique, ScanType
from netrecon.models.host import Host
from netrecon.models.scan_result import ScanResult, ScanState


def _args(*argv):
    return build_parser().parse_args(list(argv))


class TestBuildConfiguration:
    """Tests for merging flags over the config file."""

    def test_target_from_command_line(self):
        config = build_configuration(_args("10.0.0.0/24", "--scan-type", "full-scan", "--os"), AppConfig())
        assert config.target_range == "10.0.0.0/24"
        assert config.scan_type == ScanType.FULL_SCAN
        assert config.detect_os is True

    def test_no_target(self):
        with pytest.raises(ValueError):
            build_configuration(_args(), AppConfig())

    def test_flags_override_config_file(self, sample_config_file):
        app_config = AppConfig.load(sample_config_file)
        config = build_configuration(
            _args("--technique", "udp", "--ports", "53,161", "--threads", "8", "--no-resolve"),
            app_config,
        )
        assert config.target_range == "192.168.1.0/24"
        assert config.port_technique == PortScanTechnique.UDP
        assert config.ports == (53, 161)
        assert config.threads == 8
        assert config.resolve_hostnames is False
        # Untouched values come from the file
        assert config.timeout_ms == 1500

    def test_bad_numbers_fall_back(self):
        config = build_configuration(_args("10.0.0.1", "--timeout", "soon", "--threads", "0"), AppConfig())
        assert config.timeout_ms == 3000
        assert config.threads == 50

    def test_extended_ports(self):
        config = build_configuration(_args("10.0.0.1", "--extended-ports"), AppConfig())
        assert config.ports == EXTENDED_PORTS


class TestPrintSummary:
    """Tests for print_summary."""

    def test_prints_hosts(self, capsys):
        result = ScanResult(
            target_range="10.0.0.0/30",
            state=ScanState.COMPLETED,
            hosts=[Host(ip="10.0.0.1", is_alive=True, open_ports={22}, vulnerabilities={"Telnet service exposed"})],
        )
        print_summary(result)
        out = capsys.readouterr().out
        assert "10.0.0.1" in out
        assert "Telnet service exposed" in out
        assert "1 hosts up, 1 open ports" in out

    def test_prints_error(self, capsys):
        print_summary(ScanResult(target_range="bad", state=ScanState.FAILED, error="Invalid target"))
        out = capsys.readouterr().out
        assert "Error: Invalid target" in out
        assert "No hosts found" in out
