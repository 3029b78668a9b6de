"""Ports consumed by the backup engine.

The engine never talks to a terminal or spawns processes directly; concrete
bindings are installed by infrastructure wiring.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence


class Reporter(Protocol):
    """Observational sink for status, progress and diagnostics."""

    def status_begin(self, title: str, short_title: str) -> None: ...

    def status_update(self, fraction: float, text: str | None = None) -> None: ...

    def status_end(self, text: str) -> None: ...

    def log(self, text: str) -> None:
        """Detail that belongs in the log file only."""
        ...

    def message(self, text: str) -> None: ...

    def warn(self, text: str) -> None: ...

    def error(self, text: str) -> None: ...


class CommandOutcome(Protocol):
    returncode: int
    stdout: str
    stderr: str


class SystemIntegration(Protocol):
    """Host-side steps around an uninstall. Every method is best-effort."""

    def run_hook(self, name: str) -> bool: ...

    def rebuild_module_dependencies(self, kernel_name: str) -> bool: ...

    def rebuild_library_cache(self) -> bool: ...

    def kernel_module_loaded(self, name: str) -> bool: ...

    def unload_kernel_module(self, name: str) -> bool: ...

    def dkms_module_installed(self, version: str) -> bool: ...

    def remove_dkms_module(self, version: str) -> bool: ...

    def find_util(self, name: str) -> Path | None: ...

    def run_command(self, argv: Sequence[str]) -> CommandOutcome: ...
