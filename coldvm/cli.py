"""CLI entry points for Cold VM."""

from __future__ import annotations

import argparse
import dataclasses
from typing import List, Optional

from coldvm.config import apply_cli_overrides, parse_env
from coldvm.constants import NOVNC_URL
from coldvm.exceptions import ManagerError
from coldvm.models import BootState, VMConfig
from coldvm.utils import log
from coldvm.vm import VMManager

_BANNER_COLOUR = "\033[0;36m"
_RESET = "\033[0m"

_DEFAULTS_EPILOG = """\
Default configuration:
  - 4 GB RAM
  - 4 CPU cores (host model)
  - VirtIO devices
  - VNC with remote scaling (noVNC on port 8080)
  - Bridge networking (virbr0)
  - Camera, audio & microphone enabled

Settings may also come from coldvm.yaml (or $COLDVM_CONFIG) and from
environment variables such as CPUS, MEMORY_GB and BRIDGE_INTERFACE.
"""


def _print_block(lines: List[str]) -> None:
    max_len = max(len(line) for line in lines)
    border_len = max_len + 2
    print(f"{_BANNER_COLOUR}{'=' * border_len}{_RESET}", flush=True)
    for line in lines:
        print(f"{_BANNER_COLOUR}{line}{_RESET}", flush=True)
    print(f"{_BANNER_COLOUR}{'=' * border_len}{_RESET}", flush=True)


def print_header() -> None:
    _print_block(["  COLD VM MANAGER", "  Advanced Virtual Machine System"])


def print_ready_banner(cfg: VMConfig) -> None:
    """Print the access information once the VM is up."""
    if cfg.remote_display:
        _print_block(
            [
                "  VM is ready! Access via web browser:",
                "",
                f"  {NOVNC_URL}",
                "",
                "  Features: Remote scaling, auto-connect, full control",
            ]
        )
    else:
        log("SUCCESS", "VM started in local display mode!")


def show_config(cfg: VMConfig) -> None:
    """Print the resolved VM configuration and exit."""
    for field in dataclasses.fields(cfg):
        print(f"  {field.name}: {getattr(cfg, field.name)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coldvm",
        description="Cold VM Manager - Advanced Virtual Machine System",
        epilog=_DEFAULTS_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--disable-remote-display",
        "--no-vnc",
        action="store_true",
        help="Use local GTK display instead of VNC",
    )
    parser.add_argument(
        "--disable-bridge-networking",
        "--no-bridge",
        action="store_true",
        help="Use NAT networking instead of bridge",
    )
    parser.add_argument("--disable-camera", "--no-camera", action="store_true", help="Disable camera passthrough")
    parser.add_argument("--disable-microphone", "--no-mic", action="store_true", help="Disable microphone")
    parser.add_argument("--show-config", action="store_true", help="Show resolved VM configuration and exit")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Check requirements, discover media and print the QEMU command without starting it",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = apply_cli_overrides(
            parse_env(),
            disable_remote_display=args.disable_remote_display,
            disable_bridge_networking=args.disable_bridge_networking,
            disable_camera=args.disable_camera,
            disable_microphone=args.disable_microphone,
        )
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1

    if args.show_config:
        show_config(cfg)
        return 0

    print_header()
    vm_mgr = VMManager(cfg)

    if args.dry_run:
        if not vm_mgr.boot(launch=False):
            return 1
        assert vm_mgr.command is not None
        log("INFO", "=== Dry-run complete (no VM started) ===")
        print(vm_mgr.command.render(), flush=True)
        return 0

    previous_handlers = vm_mgr.install_signal_handlers()
    try:
        if not vm_mgr.boot():
            if vm_mgr.state is BootState.ABORTED:
                log("ERROR", "Failed to start Cold VM!")
                return 1
            return 0
        print_ready_banner(vm_mgr.cfg)
        vm_mgr.wait_until_stopped()
        return 0
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
    finally:
        vm_mgr.shutdown()
        VMManager.restore_signal_handlers(previous_handlers)
