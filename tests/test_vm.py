"""Tests for coldvm.vm module."""

from __future__ import annotations

import dataclasses
import signal
from unittest.mock import MagicMock, patch

import pytest

from coldvm.commands import build_command
from coldvm.exceptions import ManagerError
from coldvm.models import BootState, CameraIdentity
from coldvm.vm import VMManager

WEBCAM = CameraIdentity("046d", "082d", "HD Pro Webcam C920")


@pytest.fixture
def host_tools():
    """Pretend qemu, websockify, /dev/kvm and the bridge are all present."""
    with (
        patch("coldvm.vm.command_available", return_value=True) as mock_available,
        patch("coldvm.vm.kvm_available", return_value=True),
        patch("coldvm.network.bridge_available", return_value=True),
    ):
        yield mock_available


def _mgr(cfg, supervisor=None, camera=None):
    return VMManager(cfg, supervisor=supervisor or MagicMock(), camera_detector=MagicMock(return_value=camera))


def _add_disk(cfg, name="vm.qcow2"):
    cfg.disk_dir.mkdir(parents=True, exist_ok=True)
    (cfg.disk_dir / name).write_bytes(b"")


class TestBootSequence:
    def test_reaches_ready_with_remote_display(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        supervisor = MagicMock()
        mgr = _mgr(default_vm_config, supervisor=supervisor, camera=WEBCAM)

        assert mgr.boot() is True
        assert mgr.state is BootState.READY
        roles = [c[0][0] for c in supervisor.launch.call_args_list]
        assert roles == ["emulator", "display-bridge"]
        emulator_argv = supervisor.launch.call_args_list[0][0][1]
        assert emulator_argv[0] == "qemu-system-x86_64"
        assert "usb-host,vendorid=0x046d,productid=0x082d" in emulator_argv

    def test_local_display_skips_bridge(self, default_vm_config, host_tools):
        cfg = dataclasses.replace(default_vm_config, remote_display=False)
        _add_disk(cfg)
        supervisor = MagicMock()
        mgr = _mgr(cfg, supervisor=supervisor)

        assert mgr.boot() is True
        assert [c[0][0] for c in supervisor.launch.call_args_list] == ["emulator"]
        host_tools.assert_called_once_with("qemu-system-x86_64")

    def test_camera_detection_skipped_when_disabled(self, default_vm_config, host_tools):
        cfg = dataclasses.replace(default_vm_config, camera_enabled=False)
        _add_disk(cfg)
        mgr = _mgr(cfg)
        mgr.boot()
        mgr.camera_detector.assert_not_called()
        assert mgr.camera is None

    def test_command_comes_from_build_command(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config, camera=WEBCAM)
        with patch("coldvm.vm.build_command", wraps=build_command) as mock_build:
            assert mgr.boot(launch=False) is True
        mock_build.assert_called_once_with(mgr.cfg, mgr.media, WEBCAM)
        assert "usb-host,vendorid=0x046d,productid=0x082d" in mgr.command

    def test_dry_run_stops_before_launch(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        supervisor = MagicMock()
        mgr = _mgr(default_vm_config, supervisor=supervisor)
        assert mgr.boot(launch=False) is True
        assert mgr.state is BootState.IDLE
        assert mgr.command is not None
        supervisor.launch.assert_not_called()

    def test_cannot_boot_twice(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        with pytest.raises(ManagerError, match="Cannot boot"):
            mgr.boot()


class TestPreflight:
    def test_missing_qemu_aborts(self, default_vm_config, host_tools):
        host_tools.side_effect = lambda cmd: cmd != "qemu-system-x86_64"
        mgr = _mgr(default_vm_config)
        assert mgr.boot() is False
        assert mgr.state is BootState.ABORTED
        assert "QEMU is required" in mgr.abort_reason
        mgr.supervisor.launch.assert_not_called()

    def test_missing_websockify_aborts_in_remote_mode(self, default_vm_config, host_tools):
        host_tools.side_effect = lambda cmd: cmd != "websockify"
        mgr = _mgr(default_vm_config)
        assert mgr.boot() is False
        assert mgr.state is BootState.ABORTED
        assert "Websockify" in mgr.abort_reason

    def test_missing_websockify_ignored_in_local_mode(self, default_vm_config, host_tools):
        host_tools.side_effect = lambda cmd: cmd != "websockify"
        cfg = dataclasses.replace(default_vm_config, remote_display=False)
        _add_disk(cfg)
        assert _mgr(cfg).boot() is True

    def test_missing_firmware_and_assets_only_warn(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        with patch("coldvm.vm.log") as mock_log:
            assert mgr.boot() is True
        warnings = [c[0][1] for c in mock_log.call_args_list if c[0][0] == "WARN"]
        assert any("OVMF Firmware not found" in w for w in warnings)
        assert any("noVNC not found" in w for w in warnings)

    def test_missing_bridge_falls_back_to_nat(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        with patch("coldvm.network.bridge_available", return_value=False):
            assert mgr.boot() is True
        assert mgr.cfg.bridge_networking is False
        assert default_vm_config.bridge_networking is True
        assert "user,id=net0" in mgr.command


class TestDiscovery:
    def test_no_bootable_media_aborts(self, default_vm_config, host_tools):
        mgr = _mgr(default_vm_config)
        with patch("coldvm.vm.ensure_default_disk", return_value=False) as mock_create:
            assert mgr.boot() is False
        mock_create.assert_called_once_with(default_vm_config.disk_dir / "disk.qcow2", 30)
        assert mgr.state is BootState.ABORTED
        assert "No bootable media" in mgr.abort_reason
        mgr.supervisor.launch.assert_not_called()

    def test_default_disk_is_created_and_used(self, default_vm_config, host_tools):
        cfg = default_vm_config

        def fake_create(path, size_gb):
            path.write_bytes(b"")
            return True

        mgr = _mgr(cfg)
        with patch("coldvm.vm.ensure_default_disk", side_effect=fake_create):
            assert mgr.boot() is True
        assert mgr.media.disks == (cfg.disk_dir / "disk.qcow2",)

    def test_iso_only_does_not_create_disk(self, default_vm_config, host_tools):
        cfg = default_vm_config
        cfg.rom_dir.mkdir(parents=True)
        (cfg.rom_dir / "live.iso").write_bytes(b"")
        mgr = _mgr(cfg)
        with patch("coldvm.vm.ensure_default_disk") as mock_create:
            assert mgr.boot() is True
        mock_create.assert_not_called()
        assert mgr.media.boot_mode == "Live ISO (no persistent storage)"
        assert "order=dc,menu=on" in mgr.command

    def test_discovery_order_is_lexicographic(self, default_vm_config, host_tools):
        for name in ("b.qcow2", "a.qcow2", "c.qcow2"):
            _add_disk(default_vm_config, name)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        assert [p.name for p in mgr.media.disks] == ["a.qcow2", "b.qcow2", "c.qcow2"]


class TestLaunchFailures:
    def test_emulator_failure_aborts(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        supervisor = MagicMock()
        supervisor.launch.side_effect = ManagerError("emulator exited prematurely (code 1)")
        mgr = _mgr(default_vm_config, supervisor=supervisor)
        assert mgr.boot() is False
        assert mgr.state is BootState.ABORTED
        assert supervisor.launch.call_count == 1

    def test_bridge_failure_cleans_up_emulator(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        supervisor = MagicMock()
        supervisor.launch.side_effect = [MagicMock(), ManagerError("Failed to start display-bridge")]
        mgr = _mgr(default_vm_config, supervisor=supervisor)
        assert mgr.boot() is False
        assert mgr.state is BootState.ABORTED
        supervisor.shutdown.assert_called_once()


class TestShutdown:
    def test_ready_to_idle(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        mgr.shutdown()
        assert mgr.state is BootState.IDLE
        mgr.supervisor.shutdown.assert_called_once()

    def test_shutdown_when_idle_is_harmless(self, default_vm_config):
        mgr = _mgr(default_vm_config)
        mgr.shutdown()
        assert mgr.state is BootState.IDLE

    def test_stop_requested_mid_boot_returns_to_idle(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        supervisor = MagicMock()
        mgr = _mgr(default_vm_config, supervisor=supervisor)

        def launch(role, argv, settle=0.0):
            # Interruption arrives while the emulator is being spawned.
            mgr.request_stop()
            return MagicMock()

        supervisor.launch.side_effect = launch
        assert mgr.boot() is False
        assert mgr.state is BootState.IDLE
        assert supervisor.launch.call_count == 1
        assert supervisor.shutdown.call_count >= 2

    def test_stop_during_ready_transition_returns_to_idle(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        transition = mgr._transition

        def stop_at_ready(state):
            if state is BootState.READY and not mgr._stop_requested:
                mgr.request_stop()
            transition(state)

        mgr._transition = stop_at_ready
        assert mgr.boot() is False
        assert mgr.state is BootState.IDLE

    def test_signal_handler_closes_over_manager(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        previous = mgr.install_signal_handlers()
        try:
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)
        finally:
            VMManager.restore_signal_handlers(previous)
        assert mgr.state is BootState.IDLE
        mgr.supervisor.shutdown.assert_called_once()
        assert signal.getsignal(signal.SIGTERM) == previous[signal.SIGTERM]


class TestWaitUntilStopped:
    def test_stop_before_waiting_returns_quietly(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        mgr.request_stop()
        mgr.wait_until_stopped()
        assert mgr.state is BootState.IDLE
        mgr.supervisor.is_running.assert_not_called()

    def test_returns_when_emulator_exits(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        mgr.supervisor.is_running.side_effect = [True, False]
        with patch("coldvm.vm.time.sleep"):
            mgr.wait_until_stopped()
        assert mgr.state is BootState.IDLE
        mgr.supervisor.shutdown.assert_called_once()

    def test_returns_after_stop_request(self, default_vm_config, host_tools):
        _add_disk(default_vm_config)
        mgr = _mgr(default_vm_config)
        mgr.boot()
        mgr.supervisor.is_running.return_value = True
        with patch("coldvm.vm.time.sleep", side_effect=lambda _: mgr.request_stop()):
            mgr.wait_until_stopped()
        assert mgr.state is BootState.IDLE

    def test_requires_ready_state(self, default_vm_config):
        with pytest.raises(ManagerError, match="not running"):
            _mgr(default_vm_config).wait_until_stopped()
