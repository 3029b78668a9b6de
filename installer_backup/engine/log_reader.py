from __future__ import annotations

from dataclasses import dataclass
import os

from installer_backup.application.ports import Reporter
from installer_backup.domain.errors import BackupIOError, LogParseError
from installer_backup.domain.log_format import LOG_ENCODING, LOG_ERRORS, LogSession, parse_log
from installer_backup.infrastructure.backup_store import BackupStore


@dataclass(frozen=True)
class LogHeader:
    version: str
    description: str


class LogReader:
    def __init__(self, store: BackupStore, reporter: Reporter | None = None) -> None:
        self.store = store
        self.reporter = reporter

    def open_session(self) -> LogSession:
        """Load and parse the whole log.

        The backup root and the log must still carry the permissions they
        were created with; anything else means someone else touched them.
        """
        self.store.verify_root()
        log_path = self.store.log_path
        try:
            with open(log_path, "rb") as f:
                self.store.verify_log_mode(os.fstat(f.fileno()).st_mode)
                data = f.read()
        except OSError as exc:
            raise BackupIOError(f"Failure reading '{log_path}'", path=str(log_path), os_error=exc) from exc

        if self.reporter is not None:
            self.reporter.status_begin("Parsing log file:", "Parsing")
        try:
            session = parse_log(data, log_path=str(log_path), on_progress=self._progress)
        except LogParseError:
            if self.reporter is not None:
                self.reporter.status_end("error.")
            raise
        if self.reporter is not None:
            self.reporter.status_end("done.")
        return session

    def _progress(self, fraction: float) -> None:
        if self.reporter is not None:
            self.reporter.status_update(fraction)

    def peek_header(self) -> LogHeader | None:
        """Read only the version and description lines; ``None`` if there is no usable header."""
        try:
            with open(self.store.log_path, "r", encoding=LOG_ENCODING, errors=LOG_ERRORS, newline="\n") as f:
                version = f.readline()
                description = f.readline()
        except OSError:
            return None
        if not version.endswith("\n") or not description:
            return None
        return LogHeader(version=version.rstrip("\n"), description=description.rstrip("\n"))
