"""Backup/uninstall configuration loader.

Settings come from an optional YAML file. A config file that was asked for
explicitly but is missing or malformed is fail-closed; without one the
built-in defaults apply. ``INSTALLER_BACKUP_ROOT`` overrides the backup root.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import os
from pathlib import Path
import platform
from typing import Any, Final, Mapping

import yaml

from installer_backup.domain.errors import ConfigError
from installer_backup.infrastructure.path_contract import normalize_absolute_path

ENV_CONFIG: Final[str] = "INSTALLER_BACKUP_CONFIG"
ENV_BACKUP_ROOT: Final[str] = "INSTALLER_BACKUP_ROOT"

DEFAULT_CONFIG_PATH: Final[Path] = Path("/etc/installer-backup/config.yaml")
DEFAULT_BACKUP_ROOT: Final[str] = "/var/lib/installer-backup"
DEFAULT_LOG_FILE_NAME: Final[str] = "/var/log/installer-backup-uninstall.log"
DEFAULT_HOOKS_DIR: Final[str] = "/usr/lib/installer-backup"
DEFAULT_UNINSTALLER: Final[str] = "installer-backup-uninstall"

DIRECTORY_ORDERS: Final[tuple[str, ...]] = ("length", "depth")
KNOWN_UTILS: Final[tuple[str, ...]] = ("depmod", "ldconfig", "rmmod", "dkms")

_KNOWN_KEYS: Final[frozenset[str]] = frozenset(
    {
        "backup_root",
        "log_file_name",
        "hooks_dir",
        "kernel_name",
        "kernel_modules",
        "dkms_module",
        "skip_module_unload",
        "directory_order",
        "uninstaller",
        "utils",
    }
)


@dataclass(frozen=True)
class BackupConfig:
    backup_root: Path = Path(DEFAULT_BACKUP_ROOT)
    log_file_name: Path = Path(DEFAULT_LOG_FILE_NAME)
    hooks_dir: Path = Path(DEFAULT_HOOKS_DIR)
    kernel_name: str = field(default_factory=platform.release)
    kernel_modules: tuple[str, ...] = ()
    dkms_module: str | None = None
    skip_module_unload: bool = False
    directory_order: str = "length"
    uninstaller: str | None = DEFAULT_UNINSTALLER
    utils: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackupConfig":
        unknown = sorted(set(data) - _KNOWN_KEYS)
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")

        order = str(data.get("directory_order", "length")).strip().lower()
        if order not in DIRECTORY_ORDERS:
            raise ConfigError(f"directory_order must be one of {', '.join(DIRECTORY_ORDERS)}, got '{order}'")

        skip_unload = data.get("skip_module_unload", False)
        if not isinstance(skip_unload, bool):
            raise ConfigError("skip_module_unload must be a boolean")

        modules = data.get("kernel_modules", [])
        if isinstance(modules, str):
            modules = [modules]
        if not isinstance(modules, list) or not all(isinstance(m, str) and m.strip() for m in modules):
            raise ConfigError("kernel_modules must be a list of module names")

        utils = data.get("utils", {}) or {}
        if not isinstance(utils, dict):
            raise ConfigError("utils must be a mapping of utility name to path")
        resolved_utils: dict[str, str] = {}
        for name, raw in utils.items():
            if name not in KNOWN_UTILS:
                raise ConfigError(f"utils: unknown utility '{name}'")
            resolved_utils[name] = str(normalize_absolute_path(str(raw), purpose=f"utils.{name}"))

        kernel_name = str(data.get("kernel_name") or "").strip() or platform.release()
        dkms_module = str(data.get("dkms_module") or "").strip() or None
        uninstaller = data.get("uninstaller", DEFAULT_UNINSTALLER)
        uninstaller = str(uninstaller).strip() if uninstaller else None

        return cls(
            backup_root=normalize_absolute_path(
                str(data.get("backup_root", DEFAULT_BACKUP_ROOT)), purpose="backup_root"
            ),
            log_file_name=normalize_absolute_path(
                str(data.get("log_file_name", DEFAULT_LOG_FILE_NAME)), purpose="log_file_name"
            ),
            hooks_dir=normalize_absolute_path(str(data.get("hooks_dir", DEFAULT_HOOKS_DIR)), purpose="hooks_dir"),
            kernel_name=kernel_name,
            kernel_modules=tuple(m.strip() for m in modules),
            dkms_module=dkms_module,
            skip_module_unload=skip_unload,
            directory_order=order,
            uninstaller=uninstaller or None,
            utils=resolved_utils,
        )

    def with_overrides(self, **changes: Any) -> "BackupConfig":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"unable to read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def resolve_config_path(path: Path | None, env: Mapping[str, str]) -> Path | None:
    if path is not None:
        return path
    raw = str(env.get(ENV_CONFIG, "") or "").strip()
    if raw:
        return normalize_absolute_path(raw, purpose=ENV_CONFIG)
    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH
    return None


def load_config(path: Path | None = None, env: Mapping[str, str] | None = None) -> BackupConfig:
    """Load the configuration (fail-closed for an explicit config file)."""
    env = os.environ if env is None else env
    config_path = resolve_config_path(path, env)
    if config_path is not None and not config_path.is_file():
        raise ConfigError(f"config file not found: {config_path}")
    data = _load_yaml(config_path) if config_path is not None else {}
    config = BackupConfig.from_dict(data)

    root_override = str(env.get(ENV_BACKUP_ROOT, "") or "").strip()
    if root_override:
        config = config.with_overrides(
            backup_root=normalize_absolute_path(root_override, purpose=ENV_BACKUP_ROOT)
        )
    return config
