"""USB camera detection for Cold VM.

``lsusb`` prints one device per line::

    Bus 001 Device 003: ID 046d:082d Logitech, Inc. HD Pro Webcam C920

A line is a camera candidate when it contains one of ``CAMERA_KEYWORDS``. The
vendor and product ids are the two 4-digit hex groups after ``ID ``, and the
device name is whatever follows them. Lines that do not fit this shape are
treated as "no camera" rather than errors.
"""

from __future__ import annotations

import subprocess
from typing import Iterable, Optional

from coldvm.constants import CAMERA_KEYWORDS, LSUSB, USB_ID_RE
from coldvm.models import CameraIdentity
from coldvm.utils import log


def parse_camera_line(line: str) -> Optional[CameraIdentity]:
    if not any(keyword in line for keyword in CAMERA_KEYWORDS):
        return None
    match = USB_ID_RE.search(line)
    if match is None:
        return None
    vendor, product, rest = match.groups()
    return CameraIdentity(vendor_id=vendor.lower(), product_id=product.lower(), name=rest.strip())


def find_camera(lines: Iterable[str]) -> Optional[CameraIdentity]:
    for line in lines:
        identity = parse_camera_line(line)
        if identity is not None:
            return identity
    return None


def detect_camera() -> Optional[CameraIdentity]:
    """Look for a USB camera via ``lsusb``; any failure means no camera."""
    log("DEBUG", "Detecting USB camera devices...")
    try:
        result = subprocess.run(
            [LSUSB],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        log("WARN", f"Could not execute {LSUSB} to detect camera! ({exc})")
        return None
    if result.returncode != 0 and not result.stdout:
        log("WARN", f"{LSUSB} exited with status {result.returncode}; camera disabled")
        return None

    identity = find_camera(result.stdout.splitlines())
    if identity is None:
        log("WARN", "No camera device found! Camera disabled.")
        log("WARN", "Make sure your camera is connected and working")
        return None
    log("DEBUG", f"Camera IDs: {identity.vendor_id}:{identity.product_id}")
    return identity
