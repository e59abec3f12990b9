"""UEFI variable store provisioning for Cold VM."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable

from coldvm.constants import OVMF_VARS_SIZE, OVMF_VARS_TEMPLATES
from coldvm.utils import ensure_directory, log


def ensure_vars_store(
    path: Path,
    templates: Iterable[Path] = OVMF_VARS_TEMPLATES,
    size: int = OVMF_VARS_SIZE,
) -> bool:
    """Make sure a writable OVMF variables file exists at ``path``.

    The first template that exists and copies cleanly wins. Without one, a
    zero-filled file of ``size`` bytes is written instead; the guest then
    boots with unconfigured firmware settings. Returns False only if no file
    could be produced at all.
    """
    if path.exists():
        return True

    log("INFO", "Creating OVMF VARS file...")
    try:
        ensure_directory(path.parent)
    except OSError as exc:
        log("ERROR", f"Cannot create firmware directory {path.parent}: {exc}")
        return False

    for source in templates:
        if not source.exists():
            continue
        try:
            shutil.copyfile(source, path)
        except OSError as exc:
            log("DEBUG", f"Failed to copy from {source}: {exc}")
            continue
        log("SUCCESS", f"OVMF VARS file created from system template ({source})")
        return True

    log("WARN", "Creating empty OVMF VARS file (not recommended)")
    try:
        with open(path, "wb") as f:
            f.truncate(size)
    except OSError as exc:
        log("ERROR", f"Failed to create OVMF VARS file at {path}: {exc}")
        return False
    return True
