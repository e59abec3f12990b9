"""Utility functions for Cold VM."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from coldvm.constants import _LOG_VERBOSE, FALSY, TRUTHY
from coldvm.exceptions import ManagerError


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def parse_bool(name: str, raw: object) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, str)):
        value = str(raw).strip().lower()
        if value in TRUTHY:
            return True
        if value in FALSY:
            return False
    raise ManagerError(f"{name} must be a boolean (got '{raw}')")


def parse_int(name: str, raw: object, min_val: int = 1, max_val: Optional[int] = None) -> int:
    if isinstance(raw, bool):
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ManagerError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ManagerError(f"{name} must be <= {max_val} (got {value})")
    return value


def command_available(cmd: str) -> bool:
    """Return True if ``cmd`` resolves on PATH."""
    return shutil.which(cmd) is not None


def kvm_available() -> bool:
    """Return True if /dev/kvm exists and can be opened."""
    kvm_path = Path("/dev/kvm")
    if not kvm_path.exists():
        return False
    try:
        fd = os.open(kvm_path, os.O_RDONLY)
    except OSError:
        return False
    else:
        os.close(fd)
        return True


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result
