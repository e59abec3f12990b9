"""QEMU and websockify command synthesis for Cold VM."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

from coldvm.constants import (
    BRIDGE_MAC_ADDRESS,
    DEFAULT_DISK_FORMAT,
    DISK_FORMATS,
    NOVNC_PORT,
    QEMU_BINARY,
    VNC_DISPLAY,
    VNC_PORT,
    WEBSOCKIFY,
)
from coldvm.firmware import ensure_vars_store
from coldvm.models import CameraIdentity, DiscoveredMedia, EmulatorCommand, VMConfig
from coldvm.utils import log


def disk_format(path: Path) -> str:
    """Infer the qemu block format from the image file extension."""
    return DISK_FORMATS.get(path.suffix.lower(), DEFAULT_DISK_FORMAT)


class CommandBuilder:
    """Assemble the emulator invocation for one boot.

    ``build`` never raises: missing firmware, a failed variables store or an
    absent camera only drop the matching arguments and log a warning.
    """

    def __init__(self, cfg: VMConfig, provision_vars: Callable[[Path], bool] = ensure_vars_store) -> None:
        self.cfg = cfg
        self.provision_vars = provision_vars

    def build(self, media: DiscoveredMedia, camera: Optional[CameraIdentity] = None) -> EmulatorCommand:
        cmd: List[str] = [QEMU_BINARY, "-enable-kvm"]
        cmd += ["-cpu", self.cfg.cpu_model, "-smp", str(self.cfg.cpus)]
        cmd += ["-m", f"{self.cfg.memory_gb}G"]
        cmd += self._display_args()
        cmd += self._firmware_args()
        cmd += self._disk_args(media)
        cmd += self._boot_media_args(media)
        cmd += self._audio_args()
        cmd += self._network_args()
        cmd += self._usb_args(camera)
        cmd += ["-rtc", "base=localtime,clock=host,driftfix=slew"]
        if media.boot_media:
            cmd += ["-boot", "order=dc,menu=on"]
        else:
            cmd += ["-boot", "order=c,menu=on"]
        cmd += ["-machine", "type=q35,accel=kvm"]
        return EmulatorCommand(tuple(cmd))

    def _display_args(self) -> List[str]:
        args = ["-vga", "virtio", "-display"]
        if self.cfg.remote_display:
            args += ["none", "-vnc", f":{VNC_DISPLAY}"]
        else:
            args += ["gtk,gl=on"]
        return args

    def _firmware_args(self) -> List[str]:
        firmware = self.cfg.firmware_path
        if not firmware.exists():
            log("DEBUG", f"No firmware at {firmware}; using default BIOS")
            return []
        args = ["-drive", f"if=pflash,format=raw,readonly=on,file={firmware}"]
        if self.provision_vars(self.cfg.vars_path):
            args += ["-drive", f"if=pflash,format=raw,file={self.cfg.vars_path}"]
        else:
            log("WARN", "OVMF VARS store unavailable; firmware settings will not persist")
        return args

    def _disk_args(self, media: DiscoveredMedia) -> List[str]:
        if not media.disks:
            return []
        args: List[str] = []
        log("INFO", f"Attaching {len(media.disks)} disk(s):")
        for idx, disk in enumerate(media.disks):
            args += ["-drive", f"file={disk},format={disk_format(disk)},if=virtio,cache=writeback"]
            boot_flag = " [PRIMARY BOOT]" if idx == 0 else ""
            log("INFO", f"  -> {disk.name}{boot_flag}")
        return args

    def _boot_media_args(self, media: DiscoveredMedia) -> List[str]:
        if not media.boot_media:
            return []
        args: List[str] = []
        log("INFO", f"Attaching {len(media.boot_media)} ISO(s):")
        for idx, iso in enumerate(media.boot_media):
            if idx == 0:
                args += ["-cdrom", str(iso)]
                log("INFO", f"  -> {iso.name} [CDROM - BOOT PRIORITY]")
            else:
                args += ["-drive", f"file={iso},media=cdrom,readonly=on,if=ide,index={idx}"]
                log("INFO", f"  -> {iso.name} [CDROM {idx}]")
        return args

    def _audio_args(self) -> List[str]:
        if not self.cfg.audio_enabled:
            log("WARN", "Audio is disabled!")
            return []
        args = ["-audiodev", "alsa,id=audio0", "-device", "intel-hda"]
        if self.cfg.microphone_enabled:
            args += ["-device", "hda-duplex,audiodev=audio0"]
            log("SUCCESS", "Audio & Microphone enabled!")
        else:
            args += ["-device", "hda-output,audiodev=audio0"]
            log("SUCCESS", "Audio enabled (no microphone)")
            log("WARN", "Microphone is disabled!")
        return args

    def _network_args(self) -> List[str]:
        if self.cfg.bridge_networking:
            iface = self.cfg.bridge_interface
            log("SUCCESS", f"Network: Bridge mode ({iface})")
            return [
                "-netdev",
                f"bridge,id=net0,br={iface}",
                "-device",
                f"virtio-net-pci,netdev=net0,mac={BRIDGE_MAC_ADDRESS}",
            ]
        log("SUCCESS", "Network: NAT mode")
        return ["-netdev", "user,id=net0", "-device", "virtio-net-pci,netdev=net0"]

    def _usb_args(self, camera: Optional[CameraIdentity]) -> List[str]:
        args = ["-device", "qemu-xhci,id=xhci", "-device", "usb-tablet"]
        if not self.cfg.camera_enabled:
            log("WARN", "Camera is disabled!")
        elif camera is None:
            log("WARN", "Camera passthrough skipped: no camera detected")
        else:
            args += ["-device", f"usb-host,vendorid=0x{camera.vendor_id},productid=0x{camera.product_id}"]
            log("SUCCESS", f"Camera enabled: {camera.name or 'unknown device'}")
        return args


def build_command(
    cfg: VMConfig,
    media: DiscoveredMedia,
    camera: Optional[CameraIdentity] = None,
) -> EmulatorCommand:
    return CommandBuilder(cfg).build(media, camera)


def display_bridge_command(cfg: VMConfig) -> List[str]:
    """websockify serving the noVNC assets and proxying to the QEMU VNC port."""
    cmd = [WEBSOCKIFY]
    if cfg.novnc_path.is_dir():
        cmd.append(f"--web={cfg.novnc_path}")
    else:
        log("WARN", f"noVNC assets missing at {cfg.novnc_path}; serving websocket only")
    cmd += [str(NOVNC_PORT), f"localhost:{VNC_PORT}"]
    return cmd
