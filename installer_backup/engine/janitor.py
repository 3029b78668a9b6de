"""Removal of directories created during installation.

The mkdir log is a flat list of paths, one per line. Children must go
before their parents; the historical ordering approximates that by
removing the longest paths first. ``depth`` ordering uses the number of
path segments instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Literal

from installer_backup.application.ports import Reporter
from installer_backup.domain.log_format import LOG_ENCODING, LOG_ERRORS
from installer_backup.infrastructure.backup_store import BackupStore

DirectoryOrder = Literal["length", "depth"]


@dataclass
class JanitorResult:
    log_found: bool
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def order_by_length(paths: list[str]) -> list[str]:
    return sorted(paths, key=len, reverse=True)


def _depth(path: str) -> int:
    return len([part for part in path.split("/") if part])


def order_by_depth(paths: list[str]) -> list[str]:
    return sorted(paths, key=_depth, reverse=True)


class DirectoryJanitor:
    def __init__(self, store: BackupStore, reporter: Reporter, *, order: DirectoryOrder = "length") -> None:
        if order not in ("length", "depth"):
            raise ValueError(f"unknown directory order: {order}")
        self.store = store
        self.reporter = reporter
        self.order = order

    def read_paths(self) -> list[str] | None:
        try:
            with open(self.store.mkdir_log_path, "r", encoding=LOG_ENCODING, errors=LOG_ERRORS, newline="\n") as f:
                lines = f.read().split("\n")
        except FileNotFoundError:
            return None
        root = os.path.normpath(str(self.store.root))
        seen: set[str] = set()
        paths: list[str] = []
        for line in lines:
            if not line or line in seen:
                continue
            seen.add(line)
            # the backup root stays until the uninstall removes it as a whole
            if os.path.normpath(line) == root:
                continue
            paths.append(line)
        return paths

    def ordered(self, paths: list[str]) -> list[str]:
        if self.order == "depth":
            return order_by_depth(paths)
        return order_by_length(paths)

    def run(self) -> JanitorResult:
        try:
            paths = self.read_paths()
        except OSError as exc:
            self.reporter.log(f"Unable to read mkdir log file '{self.store.mkdir_log_path}' ({exc.strerror or exc}).")
            return JanitorResult(log_found=True, failed=[str(self.store.mkdir_log_path)])
        if paths is None:
            # installations recorded before the mkdir log existed
            return JanitorResult(log_found=False)

        result = JanitorResult(log_found=True)
        for path in self.ordered(paths):
            try:
                os.rmdir(path)
            except OSError as exc:
                self.reporter.log(f"Failed to delete the directory '{path}' ({exc.strerror or exc}).")
                result.failed.append(path)
                continue
            result.removed.append(path)
        return result
