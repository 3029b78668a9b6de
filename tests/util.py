"""Shared helpers for the backup log and uninstall tests."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Callable, Sequence

from installer_backup.infrastructure.backup_store import DIRECTORY_PERMS, LOG_PERMS, BackupStore

class RecordingReporter:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.fractions: list[float] = []

    def status_begin(self, title: str, short_title: str) -> None:
        self.events.append(("status_begin", title))

    def status_update(self, fraction: float, text: str | None = None) -> None:
        self.fractions.append(fraction)

    def status_end(self, text: str) -> None:
        self.events.append(("status_end", text))

    def log(self, text: str) -> None:
        self.events.append(("log", text))

    def message(self, text: str) -> None:
        self.events.append(("message", text))

    def warn(self, text: str) -> None:
        self.events.append(("warn", text))

    def error(self, text: str) -> None:
        self.events.append(("error", text))

    def texts(self, kind: str) -> list[str]:
        return [text for k, text in self.events if k == kind]


@dataclass
class FakeOutcome:
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass
class FakeSystemIntegration:
    hooks_ok: bool = True
    caches_ok: bool = True
    loaded_modules: set[str] = field(default_factory=set)
    dkms_versions: set[str] = field(default_factory=set)
    utils: dict[str, Path] = field(default_factory=dict)
    responder: Callable[[list[str]], FakeOutcome] | None = None
    hooks: list[str] = field(default_factory=list)
    depmod_calls: list[str] = field(default_factory=list)
    ldconfig_calls: int = 0
    unloaded: list[str] = field(default_factory=list)
    dkms_removed: list[str] = field(default_factory=list)
    commands: list[list[str]] = field(default_factory=list)

    def run_hook(self, name: str) -> bool:
        self.hooks.append(name)
        return self.hooks_ok

    def rebuild_module_dependencies(self, kernel_name: str) -> bool:
        self.depmod_calls.append(kernel_name)
        return self.caches_ok

    def rebuild_library_cache(self) -> bool:
        self.ldconfig_calls += 1
        return self.caches_ok

    def kernel_module_loaded(self, name: str) -> bool:
        return name in self.loaded_modules

    def unload_kernel_module(self, name: str) -> bool:
        self.unloaded.append(name)
        self.loaded_modules.discard(name)
        return True

    def dkms_module_installed(self, version: str) -> bool:
        return version in self.dkms_versions

    def remove_dkms_module(self, version: str) -> bool:
        self.dkms_removed.append(version)
        self.dkms_versions.discard(version)
        return True

    def find_util(self, name: str) -> Path | None:
        return self.utils.get(name)

    def run_command(self, argv: Sequence[str]) -> FakeOutcome:
        argv_list = [str(a) for a in argv]
        self.commands.append(argv_list)
        if self.responder is None:
            return FakeOutcome()
        return self.responder(argv_list)


def write_file(path: Path, content: bytes, mode: int = 0o644) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.chmod(path, mode)
    return path


def write_raw_log(store: BackupStore, text: str) -> None:
    """Lay down a backup root holding exactly ``text`` as its log."""
    store.root.mkdir(parents=True, exist_ok=True)
    os.chmod(store.root, DIRECTORY_PERMS)
    store.log_path.write_bytes(text.encode("utf-8"))
    os.chmod(store.log_path, LOG_PERMS)
