"""Shared test fixtures."""

from __future__ import annotations

import pytest

from coldvm.models import VMConfig


@pytest.fixture
def default_vm_config(tmp_path) -> VMConfig:
    """Return a VMConfig whose paths all live under tmp_path."""
    return VMConfig(
        cpus=4,
        memory_gb=4,
        cpu_model="host",
        remote_display=True,
        bridge_networking=True,
        bridge_interface="virbr0",
        camera_enabled=True,
        audio_enabled=True,
        microphone_enabled=True,
        disk_dir=tmp_path / "devices" / "disk",
        rom_dir=tmp_path / "devices" / "rom",
        firmware_path=tmp_path / "boot" / "firmware" / "OVMF_CODE.fd",
        vars_path=tmp_path / "boot" / "firmware" / "OVMF_VARS.fd",
        novnc_path=tmp_path / "libraries" / "noVNC",
        default_disk_size_gb=30,
    )


@pytest.fixture
def mock_env(monkeypatch):
    """Helper to set environment variables for tests."""

    def _set(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, str(value))

    return _set


# All environment variables that parse_env() reads; used to ensure a clean slate.
_PARSE_ENV_VARS = [
    "CPUS",
    "MEMORY_GB",
    "CPU_MODEL",
    "REMOTE_DISPLAY",
    "BRIDGE_NETWORKING",
    "BRIDGE_INTERFACE",
    "CAMERA",
    "AUDIO",
    "MICROPHONE",
    "DISK_DIR",
    "ROM_DIR",
    "FIRMWARE_PATH",
    "FIRMWARE_VARS_PATH",
    "NOVNC_PATH",
    "DEFAULT_DISK_SIZE_GB",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear all environment variables that parse_env() reads and point at a missing settings file."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("coldvm.config.DEFAULT_CONFIG_PATH", tmp_path / "missing-coldvm.yaml")
