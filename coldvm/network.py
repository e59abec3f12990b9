"""Host network checks for Cold VM."""

from __future__ import annotations

import dataclasses
import subprocess

from coldvm.models import VMConfig
from coldvm.utils import log


def bridge_available(interface: str) -> bool:
    """Return True if ``ip link show <interface>`` finds the bridge."""
    try:
        result = subprocess.run(
            ["ip", "link", "show", interface],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0


def resolve_network_mode(cfg: VMConfig) -> VMConfig:
    """Fall back to user networking (NAT) when the configured bridge is missing."""
    if not cfg.bridge_networking:
        return cfg
    if bridge_available(cfg.bridge_interface):
        log("SUCCESS", f"Bridge interface '{cfg.bridge_interface}' is available!")
        return cfg
    log("WARN", f"Bridge interface '{cfg.bridge_interface}' not found!")
    log("WARN", "Falling back to user networking (NAT)")
    return dataclasses.replace(cfg, bridge_networking=False)
