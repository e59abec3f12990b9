"""Configuration loading and environment variable parsing for Cold VM."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from coldvm.constants import _SETTING_KEYS, DEFAULT_CONFIG_PATH
from coldvm.exceptions import ManagerError
from coldvm.models import VMConfig
from coldvm.utils import get_env, log, parse_bool, parse_int


def load_settings_file(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the optional YAML settings file; a missing file means no settings."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return {}
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ManagerError(f"Settings file {config_path} contains invalid YAML: {exc}")
    except OSError as exc:
        raise ManagerError(f"Cannot read settings file {config_path}: {exc}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManagerError(f"Settings file {config_path} must contain a YAML mapping, got {type(data).__name__}")
    unknown = sorted(str(key) for key in data if key not in _SETTING_KEYS)
    if unknown:
        log("WARN", f"Ignoring unknown settings in {config_path}: {', '.join(unknown)}")
    log("DEBUG", f"Loaded settings from {config_path}")
    return {key: value for key, value in data.items() if key in _SETTING_KEYS}


def parse_env(config_path: Optional[Path] = None) -> VMConfig:
    """Resolve the VM configuration from defaults, the settings file and the environment."""
    settings = load_settings_file(config_path)
    defaults = VMConfig()

    def setting(key: str, env_name: str, default: Any) -> Any:
        raw = get_env(env_name)
        if raw is not None and raw.strip():
            return raw.strip()
        if key in settings and settings[key] is not None:
            return settings[key]
        return default

    def int_setting(key: str, env_name: str, default: int, max_val: Optional[int] = None) -> int:
        return parse_int(env_name, setting(key, env_name, default), min_val=1, max_val=max_val)

    def bool_setting(key: str, env_name: str, default: bool) -> bool:
        return parse_bool(env_name, setting(key, env_name, default))

    def path_setting(key: str, env_name: str, default: Path) -> Path:
        return Path(str(setting(key, env_name, default))).expanduser()

    bridge_interface = str(setting("bridge_interface", "BRIDGE_INTERFACE", defaults.bridge_interface)).strip()
    if not bridge_interface:
        raise ManagerError("BRIDGE_INTERFACE must not be empty")

    return VMConfig(
        cpus=int_setting("cpus", "CPUS", defaults.cpus, max_val=256),
        memory_gb=int_setting("memory_gb", "MEMORY_GB", defaults.memory_gb, max_val=1024),
        cpu_model=str(setting("cpu_model", "CPU_MODEL", defaults.cpu_model)),
        remote_display=bool_setting("remote_display", "REMOTE_DISPLAY", defaults.remote_display),
        bridge_networking=bool_setting("bridge_networking", "BRIDGE_NETWORKING", defaults.bridge_networking),
        bridge_interface=bridge_interface,
        camera_enabled=bool_setting("camera", "CAMERA", defaults.camera_enabled),
        audio_enabled=bool_setting("audio", "AUDIO", defaults.audio_enabled),
        microphone_enabled=bool_setting("microphone", "MICROPHONE", defaults.microphone_enabled),
        disk_dir=path_setting("disk_dir", "DISK_DIR", defaults.disk_dir),
        rom_dir=path_setting("rom_dir", "ROM_DIR", defaults.rom_dir),
        firmware_path=path_setting("firmware_path", "FIRMWARE_PATH", defaults.firmware_path),
        vars_path=path_setting("vars_path", "FIRMWARE_VARS_PATH", defaults.vars_path),
        novnc_path=path_setting("novnc_path", "NOVNC_PATH", defaults.novnc_path),
        default_disk_size_gb=int_setting("default_disk_size_gb", "DEFAULT_DISK_SIZE_GB", defaults.default_disk_size_gb),
    )


def apply_cli_overrides(
    cfg: VMConfig,
    *,
    disable_remote_display: bool = False,
    disable_bridge_networking: bool = False,
    disable_camera: bool = False,
    disable_microphone: bool = False,
) -> VMConfig:
    """Return a copy of ``cfg`` with the command-line toggles applied."""
    changes: Dict[str, bool] = {}
    if disable_remote_display:
        changes["remote_display"] = False
    if disable_bridge_networking:
        changes["bridge_networking"] = False
    if disable_camera:
        changes["camera_enabled"] = False
    if disable_microphone:
        changes["microphone_enabled"] = False
    if not changes:
        return cfg
    return dataclasses.replace(cfg, **changes)
