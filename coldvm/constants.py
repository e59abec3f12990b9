"""Global constants and path configuration for Cold VM."""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(os.environ.get("COLDVM_CONFIG", "coldvm.yaml"))

# Layout relative to the working directory the launcher is started from.
DISK_DIR = Path("devices/disk")
ROM_DIR = Path("devices/rom")
FIRMWARE_DIR = Path("boot/firmware")
FIRMWARE_PATH = FIRMWARE_DIR / "OVMF_CODE.fd"
FIRMWARE_VARS_PATH = FIRMWARE_DIR / "OVMF_VARS.fd"
NOVNC_PATH = Path("libraries/noVNC")
DEFAULT_DISK_NAME = "disk.qcow2"
DEFAULT_DISK_SIZE_GB = 30

DEFAULT_CPUS = 4
DEFAULT_MEMORY_GB = 4
DEFAULT_CPU_MODEL = "host"
DEFAULT_BRIDGE_INTERFACE = "virbr0"

QEMU_BINARY = "qemu-system-x86_64"
QEMU_IMG = "qemu-img"
WEBSOCKIFY = "websockify"
LSUSB = "lsusb"

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"", "0", "false", "no", "off"}

DISK_EXTENSIONS = (".qcow2", ".img", ".raw", ".vdi", ".vmdk")
BOOT_MEDIA_EXTENSIONS = (".iso",)
DEFAULT_DISK_FORMAT = "qcow2"
DISK_FORMATS = {
    ".img": "raw",
    ".raw": "raw",
    ".vdi": "vdi",
    ".vmdk": "vmdk",
}

OVMF_VARS_TEMPLATES = (
    Path("/usr/share/OVMF/OVMF_VARS.fd"),
    Path("/usr/share/edk2-ovmf/x64/OVMF_VARS.fd"),
    Path("/usr/share/qemu/OVMF_VARS.fd"),
)
OVMF_VARS_SIZE = 64 * 1024 * 1024

# Remote console: QEMU VNC display :1 bridged to a local HTTP port by websockify.
VNC_DISPLAY = 1
VNC_PORT = 5900 + VNC_DISPLAY
NOVNC_PORT = 8080
NOVNC_URL = f"http://localhost:{NOVNC_PORT}/vnc.html?resize=remote&autoconnect=true"

BRIDGE_MAC_ADDRESS = "52:54:00:12:34:56"

CAMERA_KEYWORDS = ("Camera", "Webcam", "HD Webcam", "Integrated Camera")
USB_ID_RE = re.compile(r"\bID ([0-9a-fA-F]{4}):([0-9a-fA-F]{4})(?=\s|$)(.*)$")

ROLE_EMULATOR = "emulator"
ROLE_DISPLAY_BRIDGE = "display-bridge"
SHUTDOWN_ORDER = (ROLE_EMULATOR, ROLE_DISPLAY_BRIDGE)

EMULATOR_SETTLE_SECONDS = 3.0
BRIDGE_SETTLE_SECONDS = 2.0
TERMINATE_TIMEOUT = 10.0

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

_SETTING_KEYS = {
    "cpus",
    "memory_gb",
    "cpu_model",
    "remote_display",
    "bridge_networking",
    "bridge_interface",
    "camera",
    "audio",
    "microphone",
    "disk_dir",
    "rom_dir",
    "firmware_path",
    "vars_path",
    "novnc_path",
    "default_disk_size_gb",
}
