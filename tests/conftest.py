"""Pytest configuration and fixtures."""

import json
import tempfile
from pathlib import Path

import pytest

from netrecon.services.commands import CommandError, CommandOutput


class FakeRunner:
    """Command runner returning canned output keyed by command prefix."""

    def __init__(self, outputs: dict | None = None):
        self.outputs = outputs or {}
        self.calls: list[list[str]] = []

    def available(self, program: str) -> bool:
        return any(prefix.split()[0] == program for prefix in self.outputs)

    async def run(self, cmd: list[str], timeout: float = 5.0) -> CommandOutput:
        self.calls.append(list(cmd))
        line = " ".join(cmd)
        for prefix, output in self.outputs.items():
            if line.startswith(prefix):
                if isinstance(output, Exception):
                    raise output
                if isinstance(output, str):
                    return CommandOutput(returncode=0, stdout=output)
                return output
        raise CommandError(f"{cmd[0]} not found in PATH")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_runner():
    """Factory for fake command runners."""
    return FakeRunner


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing."""
    return {
        "scan": {
            "target_range": "192.168.1.0/24",
            "scan_type": "full-scan",
            "port_technique": "tcp-connect",
            "ports": [22, 80, 443],
            "timeout_ms": 1500,
            "threads": 20,
            "detect_os": True,
        },
        "engine": {
            "dns_timeout_seconds": 0.5,
            "external_ip_url": "https://api.ipify.org",
            "traceroute_max_hops": 6,
        },
        "settings": {
            "log_level": "DEBUG",
            "log_dir": "logs",
        },
    }


@pytest.fixture
def sample_config_file(temp_dir, sample_config_data):
    """Create a sample config file for testing."""
    config_path = temp_dir / "config.json"
    with open(config_path, "w") as f:
        json.dump(sample_config_data, f)
    return config_path
