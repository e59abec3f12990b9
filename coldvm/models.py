"""Data models for Cold VM."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List, NamedTuple, Tuple

from coldvm.constants import (
    DEFAULT_BRIDGE_INTERFACE,
    DEFAULT_CPU_MODEL,
    DEFAULT_CPUS,
    DEFAULT_DISK_SIZE_GB,
    DEFAULT_MEMORY_GB,
    DISK_DIR,
    FIRMWARE_PATH,
    FIRMWARE_VARS_PATH,
    NOVNC_PATH,
    ROM_DIR,
)


class CameraIdentity(NamedTuple):
    vendor_id: str
    product_id: str
    name: str


class BootState(Enum):
    IDLE = "idle"
    PREFLIGHTING = "preflighting"
    DISCOVERING_RESOURCES = "discovering-resources"
    BUILDING_COMMAND = "building-command"
    LAUNCHING_PRIMARY = "launching-primary"
    LAUNCHING_AUXILIARY = "launching-auxiliary"
    READY = "ready"
    ABORTED = "aborted"
    SHUTTING_DOWN = "shutting-down"


@dataclass(frozen=True)
class VMConfig:
    cpus: int = DEFAULT_CPUS
    memory_gb: int = DEFAULT_MEMORY_GB
    cpu_model: str = DEFAULT_CPU_MODEL
    remote_display: bool = True
    bridge_networking: bool = True
    bridge_interface: str = DEFAULT_BRIDGE_INTERFACE
    camera_enabled: bool = True
    audio_enabled: bool = True
    microphone_enabled: bool = True
    # Paths
    disk_dir: Path = DISK_DIR
    rom_dir: Path = ROM_DIR
    firmware_path: Path = FIRMWARE_PATH
    vars_path: Path = FIRMWARE_VARS_PATH
    novnc_path: Path = NOVNC_PATH
    default_disk_size_gb: int = DEFAULT_DISK_SIZE_GB


@dataclass(frozen=True)
class DiscoveredMedia:
    disks: Tuple[Path, ...] = ()
    boot_media: Tuple[Path, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.disks and not self.boot_media

    @property
    def boot_mode(self) -> str:
        if self.boot_media and self.disks:
            return "ISO Installation with persistent disk(s)"
        if self.boot_media:
            return "Live ISO (no persistent storage)"
        return "Disk boot"


@dataclass(frozen=True)
class EmulatorCommand:
    args: Tuple[str, ...]

    def __iter__(self) -> Iterator[str]:
        return iter(self.args)

    def __len__(self) -> int:
        return len(self.args)

    def __contains__(self, token: object) -> bool:
        return token in self.args

    def as_list(self) -> List[str]:
        return list(self.args)

    def render(self) -> str:
        """Shell-quoted form, for logs only."""
        return shlex.join(self.args)


@dataclass
class SupervisedProcess:
    role: str
    process: subprocess.Popen

    @property
    def pid(self) -> int:
        return self.process.pid
