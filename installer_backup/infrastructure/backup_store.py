"""Backup root: the log, the mkdir log and numbered slot files."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import stat
from typing import Final

from installer_backup.domain.errors import BackupIOError, NoBackupError, PermissionTamperError
from installer_backup.domain.log_format import BACKUP_SLOT_BASE
from installer_backup.infrastructure.fs_ops import remove_tree

DIRECTORY_PERMS: Final[int] = 0o700
LOG_PERMS: Final[int] = 0o600

LOG_NAME: Final[str] = "log"
MKDIR_LOG_NAME: Final[str] = "dirs"


@dataclass(frozen=True)
class BackupStore:
    root: Path

    @property
    def log_path(self) -> Path:
        return self.root / LOG_NAME

    @property
    def mkdir_log_path(self) -> Path:
        return self.root / MKDIR_LOG_NAME

    def exists(self) -> bool:
        return self.root.is_dir()

    def slot_path(self, num: int) -> Path:
        if num < BACKUP_SLOT_BASE:
            raise ValueError(f"not a backup slot: {num}")
        return self.root / str(num)

    def slot_numbers(self) -> list[int]:
        if not self.exists():
            return []
        nums = []
        for p in self.root.iterdir():
            if p.name.isascii() and p.name.isdigit() and int(p.name) >= BACKUP_SLOT_BASE:
                nums.append(int(p.name))
        return sorted(nums)

    def ensure_root(self) -> None:
        if self.exists():
            return
        try:
            self.root.mkdir(parents=True)
            os.chmod(self.root, DIRECTORY_PERMS)
        except OSError as exc:
            raise BackupIOError(f"Unable to create backup directory '{self.root}'", path=str(self.root), os_error=exc) from exc

    def reset(self) -> None:
        """Destroy any previous generation and start an empty one."""
        try:
            remove_tree(self.root)
        except OSError as exc:
            raise BackupIOError(f"Unable to remove backup directory '{self.root}'", path=str(self.root), os_error=exc) from exc
        self.ensure_root()
        try:
            fd = os.open(str(self.log_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, LOG_PERMS)
            try:
                # umask may have stripped bits from the creation mode
                os.fchmod(fd, LOG_PERMS)
            finally:
                os.close(fd)
        except OSError as exc:
            raise BackupIOError(f"Unable to create backup log file '{self.log_path}'", path=str(self.log_path), os_error=exc) from exc

    def destroy(self) -> None:
        remove_tree(self.root)

    def verify_root(self) -> None:
        try:
            st = os.stat(self.root)
        except FileNotFoundError:
            raise NoBackupError(f"No backup directory at '{self.root}'.") from None
        except OSError as exc:
            raise BackupIOError(f"Unable to get properties of '{self.root}'", path=str(self.root), os_error=exc) from exc
        if not stat.S_ISDIR(st.st_mode):
            raise NoBackupError(f"'{self.root}' is not a directory.")
        mode = stat.S_IMODE(st.st_mode)
        if mode != DIRECTORY_PERMS:
            raise PermissionTamperError(str(self.root), mode, DIRECTORY_PERMS)

    def verify_log_mode(self, st_mode: int) -> None:
        mode = stat.S_IMODE(st_mode)
        if mode != LOG_PERMS:
            raise PermissionTamperError(str(self.log_path), mode, LOG_PERMS)
