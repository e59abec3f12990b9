"""VM lifecycle management for Cold VM."""

from __future__ import annotations

import signal
import time
from typing import Callable, Dict, Optional

from coldvm.commands import build_command, display_bridge_command
from coldvm.constants import (
    BRIDGE_SETTLE_SECONDS,
    DEFAULT_DISK_NAME,
    EMULATOR_SETTLE_SECONDS,
    QEMU_BINARY,
    ROLE_DISPLAY_BRIDGE,
    ROLE_EMULATOR,
    WEBSOCKIFY,
)
from coldvm.devices import detect_camera
from coldvm.exceptions import BootInterrupted, ManagerError, NoBootableMediaError
from coldvm.models import BootState, CameraIdentity, DiscoveredMedia, EmulatorCommand, VMConfig
from coldvm.network import resolve_network_mode
from coldvm.scanner import create_directories, ensure_default_disk, scan_boot_media, scan_disks
from coldvm.supervisor import ProcessSupervisor
from coldvm.utils import command_available, kvm_available, log

_ACTIVE_STATES = {
    BootState.PREFLIGHTING,
    BootState.DISCOVERING_RESOURCES,
    BootState.BUILDING_COMMAND,
    BootState.LAUNCHING_PRIMARY,
    BootState.LAUNCHING_AUXILIARY,
    BootState.READY,
}


class VMManager:
    def __init__(
        self,
        vm_config: VMConfig,
        supervisor: Optional[ProcessSupervisor] = None,
        camera_detector: Callable[[], Optional[CameraIdentity]] = detect_camera,
    ) -> None:
        self.cfg = vm_config
        self.supervisor = supervisor or ProcessSupervisor()
        self.camera_detector = camera_detector
        self.state = BootState.IDLE
        self.media: Optional[DiscoveredMedia] = None
        self.camera: Optional[CameraIdentity] = None
        self.command: Optional[EmulatorCommand] = None
        self.abort_reason: Optional[str] = None
        self._stop_requested = False

    def _transition(self, state: BootState) -> None:
        log("DEBUG", f"State: {self.state.value} -> {state.value}")
        self.state = state

    def _checkpoint(self) -> None:
        if self._stop_requested:
            # Anything launched while the handler ran is stopped here.
            self.supervisor.shutdown()
            raise BootInterrupted()

    # -- boot sequence -------------------------------------------------

    def boot(self, launch: bool = True) -> bool:
        """Run the boot sequence; True once the VM is Ready (or built, for a dry run)."""
        if self.state is not BootState.IDLE:
            raise ManagerError(f"Cannot boot from state '{self.state.value}'")
        self.abort_reason = None
        try:
            self.preflight()
            self._checkpoint()
            self.discover()
            self._checkpoint()
            self.build()
            self._checkpoint()
            if not launch:
                self._transition(BootState.IDLE)
                return True
            self.launch_emulator()
            self._checkpoint()
            if self.cfg.remote_display:
                self.launch_display_bridge()
                self._checkpoint()
        except BootInterrupted:
            log("INFO", "Boot interrupted")
            self._transition(BootState.IDLE)
            return False
        except ManagerError as exc:
            self.abort(str(exc))
            return False
        self._transition(BootState.READY)
        if self._stop_requested:
            # The stop landed after the last checkpoint.
            log("INFO", "Boot interrupted")
            self.shutdown()
            return False
        return True

    def abort(self, reason: str) -> None:
        log("ERROR", reason)
        self.abort_reason = reason
        self._transition(BootState.ABORTED)

    def preflight(self) -> None:
        self._transition(BootState.PREFLIGHTING)
        log("INFO", "Initializing Cold VM...")
        log("DEBUG", "Checking system requirements...")

        if not command_available(QEMU_BINARY):
            raise ManagerError(f"QEMU is required but not installed! ({QEMU_BINARY} not found on PATH)")
        log("SUCCESS", "QEMU is available!")

        if kvm_available():
            log("SUCCESS", "KVM acceleration is available!")
        else:
            log("WARN", "/dev/kvm is not accessible; QEMU will refuse -enable-kvm")

        if self.cfg.firmware_path.exists():
            log("SUCCESS", "OVMF Firmware found!")
        else:
            log("WARN", f"OVMF Firmware not found at: {self.cfg.firmware_path}")

        if self.cfg.remote_display:
            if not command_available(WEBSOCKIFY):
                raise ManagerError("Websockify is required for VNC mode!")
            log("SUCCESS", "Websockify is available!")
            if self.cfg.novnc_path.is_dir():
                log("SUCCESS", "noVNC found!")
            else:
                log("WARN", f"noVNC not found at: {self.cfg.novnc_path}")

        self.cfg = resolve_network_mode(self.cfg)

    def discover(self) -> None:
        self._transition(BootState.DISCOVERING_RESOURCES)
        create_directories(self.cfg)
        media = DiscoveredMedia(disks=tuple(scan_disks(self.cfg)), boot_media=tuple(scan_boot_media(self.cfg)))

        if media.is_empty:
            log("WARN", "No disk images found!")
            default_disk = self.cfg.disk_dir / DEFAULT_DISK_NAME
            if ensure_default_disk(default_disk, self.cfg.default_disk_size_gb):
                media = DiscoveredMedia(disks=tuple(scan_disks(self.cfg)), boot_media=media.boot_media)

        if media.is_empty:
            raise NoBootableMediaError(
                "No bootable media available! "
                f"Add disk images to {self.cfg.disk_dir}/ or ISOs to {self.cfg.rom_dir}/"
            )

        self.media = media
        self.log_configuration()
        log("INFO", f"Boot Mode: {self.media.boot_mode}")

    def log_configuration(self) -> None:
        firmware = "Enabled" if self.cfg.firmware_path.exists() else "Disabled"
        display = "VNC (Remote)" if self.cfg.remote_display else "GTK (Local)"
        log("INFO", "System Configuration:")
        log("INFO", f"  CPU: {self.cfg.cpu_model} ({self.cfg.cpus} cores)")
        log("INFO", f"  RAM: {self.cfg.memory_gb} GB")
        log("INFO", f"  OVMF/UEFI: {firmware}")
        log("INFO", f"  Display: {display}")

    def build(self) -> None:
        self._transition(BootState.BUILDING_COMMAND)
        assert self.media is not None
        self.camera = self.camera_detector() if self.cfg.camera_enabled else None
        self.command = build_command(self.cfg, self.media, self.camera)
        log("DEBUG", "QEMU Command:")
        log("DEBUG", self.command.render())

    def launch_emulator(self) -> None:
        self._transition(BootState.LAUNCHING_PRIMARY)
        assert self.command is not None
        log("INFO", "Starting QEMU virtual machine...")
        self.supervisor.launch(ROLE_EMULATOR, self.command.as_list(), settle=EMULATOR_SETTLE_SECONDS)
        log("SUCCESS", "QEMU started successfully!")

    def launch_display_bridge(self) -> None:
        self._transition(BootState.LAUNCHING_AUXILIARY)
        log("INFO", "Starting websockify for noVNC...")
        try:
            self.supervisor.launch(
                ROLE_DISPLAY_BRIDGE,
                display_bridge_command(self.cfg),
                settle=BRIDGE_SETTLE_SECONDS,
            )
        except ManagerError:
            self.supervisor.shutdown()
            raise
        log("SUCCESS", "Websockify started successfully!")

    # -- shutdown ------------------------------------------------------

    def shutdown(self) -> None:
        """Stop every supervised process and return to Idle."""
        if self.state is BootState.SHUTTING_DOWN:
            return
        if self.state not in _ACTIVE_STATES:
            self.supervisor.shutdown()
            return
        self._transition(BootState.SHUTTING_DOWN)
        log("INFO", "Shutting down Cold VM...")
        try:
            self.supervisor.shutdown()
        finally:
            self._transition(BootState.IDLE)
        log("SUCCESS", "Cold VM shutdown complete!")

    def request_stop(self) -> None:
        self._stop_requested = True
        self.shutdown()

    def install_signal_handlers(self) -> Dict[int, object]:
        """Route SIGINT/SIGTERM to this manager; returns the previous handlers."""

        def _request_shutdown(signum, frame):
            sig_name = signal.Signals(signum).name
            log("INFO", f"{sig_name} received, shutting down VM")
            self.request_stop()

        previous: Dict[int, object] = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, _request_shutdown)
        return previous

    @staticmethod
    def restore_signal_handlers(previous: Dict[int, object]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)  # type: ignore[arg-type]

    def wait_until_stopped(self, interval: float = 1.0) -> None:
        """Block until a stop is requested or QEMU exits by itself."""
        if self._stop_requested:
            return
        if self.state is not BootState.READY:
            raise ManagerError("VM is not running")
        log("INFO", "Press Ctrl+C to shutdown the VM")
        while not self._stop_requested:
            if not self.supervisor.is_running(ROLE_EMULATOR):
                log("INFO", "QEMU has exited")
                self.shutdown()
                return
            time.sleep(interval)
