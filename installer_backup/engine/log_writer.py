"""Install-time recorder for the backup log.

Every call opens the log for append, writes its record and closes the log
again, so an interrupted installation leaves a log that is still parseable
up to the last completed call.
"""

from __future__ import annotations

from contextlib import contextmanager
import os
from pathlib import Path
import stat
from typing import IO, Iterable, Iterator

from installer_backup.domain.errors import BackupIOError, UnsupportedFileTypeError
from installer_backup.domain.log_format import (
    BACKUP_SLOT_BASE,
    LOG_ENCODING,
    LOG_ERRORS,
    encode_backed_up_symlink,
    encode_backup_slot,
    encode_header,
    encode_installed_file,
    encode_installed_symlink,
)
from installer_backup.domain.version_codec import encode_version
from installer_backup.infrastructure.backup_store import BackupStore
from installer_backup.infrastructure.crc import compute_crc
from installer_backup.infrastructure.fs_ops import move_file


@contextmanager
def _append(path: Path, what: str) -> Iterator[IO[str]]:
    try:
        f = open(path, "a", encoding=LOG_ENCODING, errors=LOG_ERRORS, newline="\n")
    except OSError as exc:
        raise BackupIOError(f"Unable to open {what} '{path}'", path=str(path), os_error=exc) from exc
    try:
        yield f
    except OSError as exc:
        raise BackupIOError(f"Unable to write {what} '{path}'", path=str(path), os_error=exc) from exc
    finally:
        try:
            f.close()
        except OSError as exc:
            raise BackupIOError(f"Error while closing {what} '{path}'", path=str(path), os_error=exc) from exc


class LogWriter:
    def __init__(self, store: BackupStore, *, next_slot: int = BACKUP_SLOT_BASE) -> None:
        if next_slot < BACKUP_SLOT_BASE:
            raise ValueError(f"slot numbers start at {BACKUP_SLOT_BASE}")
        self.store = store
        self.next_slot = next_slot

    @classmethod
    def resume(cls, store: BackupStore) -> "LogWriter":
        """Attach to the current session without reusing any slot already on disk."""
        slots = store.slot_numbers()
        return cls(store, next_slot=(slots[-1] + 1) if slots else BACKUP_SLOT_BASE)

    def init(self, version: str, description: str) -> None:
        header = encode_header(encode_version(version), description)
        self.store.reset()
        self.next_slot = BACKUP_SLOT_BASE
        with _append(self.store.log_path, "backup log file") as log:
            log.write(header)

    def backup_file(self, path: str | Path) -> None:
        """Move ``path`` out of the way and record how to put it back.

        A missing path is not an error. Directories and special files cannot
        be backed up.
        """
        filename = os.fspath(path)
        with _append(self.store.log_path, "backup log file") as log:
            try:
                st = os.lstat(filename)
            except FileNotFoundError:
                return
            except OSError as exc:
                raise BackupIOError(f"Unable to determine properties for file '{filename}'", path=filename, os_error=exc) from exc

            mode = stat.S_IMODE(st.st_mode)
            if stat.S_ISREG(st.st_mode):
                slot = self.next_slot
                try:
                    crc = compute_crc(filename)
                except OSError as exc:
                    raise BackupIOError(f"Unable to compute checksum of '{filename}'", path=filename, os_error=exc) from exc
                record = encode_backup_slot(slot, filename, crc, mode, st.st_uid, st.st_gid)
                try:
                    move_file(filename, self.store.slot_path(slot))
                except OSError as exc:
                    raise BackupIOError(f"Unable to backup file '{filename}'", path=filename, os_error=exc) from exc
                log.write(record)
                self.next_slot = slot + 1
            elif stat.S_ISLNK(st.st_mode):
                try:
                    target = os.readlink(filename)
                except OSError as exc:
                    raise BackupIOError(f"Unable to read symbolic link '{filename}'", path=filename, os_error=exc) from exc
                record = encode_backed_up_symlink(filename, target, mode, st.st_uid, st.st_gid)
                try:
                    os.unlink(filename)
                except OSError as exc:
                    raise BackupIOError(f"Unable to remove symbolic link '{filename}'", path=filename, os_error=exc) from exc
                log.write(record)
            elif stat.S_ISDIR(st.st_mode):
                raise UnsupportedFileTypeError(filename, "directory")
            else:
                raise UnsupportedFileTypeError(filename, "special file")

    def log_installed_file(self, path: str | Path) -> None:
        filename = os.fspath(path)
        with _append(self.store.log_path, "backup log file") as log:
            try:
                crc = compute_crc(filename)
            except OSError as exc:
                raise BackupIOError(f"Unable to compute checksum of '{filename}'", path=filename, os_error=exc) from exc
            log.write(encode_installed_file(filename, crc))

    def log_installed_symlink(self, path: str | Path, target: str) -> None:
        with _append(self.store.log_path, "backup log file") as log:
            log.write(encode_installed_symlink(os.fspath(path), target))

    def log_created_directories(self, paths: Iterable[str | Path]) -> None:
        lines = []
        for p in paths:
            name = os.fspath(p)
            if "\n" in name:
                raise ValueError(f"directory name must not contain a newline: {name!r}")
            lines.append(name + "\n")
        self.store.ensure_root()
        with _append(self.store.mkdir_log_path, "mkdir log file") as log:
            log.write("".join(lines))
