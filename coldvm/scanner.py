"""Disk image and boot media discovery for Cold VM."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

from coldvm.constants import BOOT_MEDIA_EXTENSIONS, DISK_EXTENSIONS, QEMU_IMG
from coldvm.models import VMConfig
from coldvm.utils import ensure_directory, log, run


def scan(directory: Path, extensions: Iterable[str]) -> List[Path]:
    """Return the entries of ``directory`` matching ``extensions``, sorted by path.

    Unreadable entries are logged and skipped. A listing error keeps whatever
    was read before it; a missing directory yields an empty list.
    """
    allowed = {ext.lower() for ext in extensions}
    if not directory.is_dir():
        log("DEBUG", f"Scan directory {directory} does not exist")
        return []
    found: List[Path] = []
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                path = Path(entry.path)
                if path.suffix.lower() not in allowed:
                    continue
                try:
                    if entry.is_dir():
                        continue
                except OSError as exc:
                    log("WARN", f"Skipping unreadable entry {path}: {exc}")
                    continue
                found.append(path)
    except OSError as exc:
        log("ERROR", f"Failed to scan {directory}: {exc}")
    return sorted(found)


def scan_disks(cfg: VMConfig) -> List[Path]:
    log("DEBUG", "Scanning for disk images...")
    disks = scan(cfg.disk_dir, DISK_EXTENSIONS)
    for disk in disks:
        log("DEBUG", f"Found disk: {disk.name}")
    return disks


def scan_boot_media(cfg: VMConfig) -> List[Path]:
    log("DEBUG", "Scanning for ISO files...")
    isos = scan(cfg.rom_dir, BOOT_MEDIA_EXTENSIONS)
    for iso in isos:
        log("DEBUG", f"Found ISO: {iso.name}")
    return isos


def create_directories(cfg: VMConfig) -> None:
    log("DEBUG", "Creating required directories...")
    targets = [cfg.disk_dir, cfg.rom_dir, cfg.firmware_path.parent, cfg.vars_path.parent, cfg.novnc_path.parent]
    try:
        for target in targets:
            ensure_directory(target)
    except OSError as exc:
        log("ERROR", f"Failed to create directories: {exc}")
        return
    log("DEBUG", "Directory structure created")


def ensure_default_disk(path: Path, size_gb: int) -> bool:
    """Create a blank qcow2 image at ``path`` unless one is already there."""
    if path.exists():
        return True
    log("INFO", f"Creating default {size_gb}GB disk image...")
    try:
        ensure_directory(path.parent)
        result = run(
            [QEMU_IMG, "create", "-f", "qcow2", str(path), f"{size_gb}G"],
            check=False,
            capture_output=True,
        )
    except OSError as exc:
        log("ERROR", f"Failed to create default disk: {exc}")
        return False
    if result.returncode != 0:
        log("ERROR", "Failed to create default disk!")
        output = (result.stderr or result.stdout or "").strip()
        if output:
            log("ERROR", f"{QEMU_IMG}: {output}")
        return False
    log("SUCCESS", "Default disk created successfully!")
    return True
