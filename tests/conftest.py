"""Shared pytest fixtures for tunnelctl tests."""

import os
from unittest.mock import Mock

import pytest

from tunnelctl.common.process import CommandResult, CommandRunner
from tunnelctl.settings import Settings

TUNNEL_ID = "6ff42ae2-765d-4adf-8112-31c55c1551ef"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep TUNNELCTL_* variables from the host out of every test."""
    for key in list(os.environ):
        if key.startswith("TUNNELCTL_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path):
    """Fully configured settings rooted in tmp_path.

    Returns:
        Settings: base domain example.com, DNS configured with email + key
    """
    return Settings(
        _env_file=None,
        base_domain="example.com",
        dns_zone_id="zone123",
        dns_email="ops@example.com",
        dns_api_key="global-api-key-1234",
        config_dir=tmp_path / "cloudflared",
        unit_dir=tmp_path / "systemd",
    )


@pytest.fixture
def command_result():
    """Factory for CommandResult objects.

    Returns:
        Callable: (returncode=0, stdout="", stderr="") -> CommandResult
    """

    def _make(returncode: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
        return CommandResult(
            args=("cloudflared",), returncode=returncode, stdout=stdout, stderr=stderr
        )

    return _make


@pytest.fixture
def mock_runner(command_result):
    """CommandRunner double whose run() succeeds with no output by default.

    Returns:
        Mock: Mock with CommandRunner's interface
    """
    runner = Mock(spec=CommandRunner)
    runner.binary_path = "/usr/local/bin/cloudflared"
    runner.run.return_value = command_result()
    runner.stream.return_value = 0
    return runner


@pytest.fixture
def fake_binary(tmp_path):
    """Executable placeholder file standing in for a real binary.

    Returns:
        Path: Path to the executable
    """
    binary = tmp_path / "bin" / "cloudflared"
    binary.parent.mkdir()
    binary.write_text("#!/bin/sh\nexit 0\n")
    binary.chmod(0o755)
    return binary
