"""Error taxonomy for the backup log and uninstall engine."""

from __future__ import annotations


class BackupLogError(Exception):
    pass


class BackupIOError(BackupLogError):
    """An open/read/write/rename/unlink/chown/chmod on a recorded path failed."""

    def __init__(self, message: str, *, path: str | None = None, os_error: OSError | None = None) -> None:
        detail = f" ({os_error.strerror or os_error})" if os_error is not None else ""
        super().__init__(f"{message}{detail}")
        self.path = path
        self.os_error = os_error


class NoBackupError(BackupLogError):
    pass


class LogParseError(BackupLogError):
    def __init__(self, line: int, log_path: str | None = None, detail: str | None = None) -> None:
        where = f" of '{log_path}'" if log_path else ""
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Error while parsing line {line}{where}{suffix}.")
        self.line = line
        self.log_path = log_path


class PermissionTamperError(BackupLogError):
    """Mode bits of the backup root or log differ from what was created."""

    def __init__(self, path: str, mode: int, expected: int) -> None:
        super().__init__(
            f"The permissions of '{path}' have been changed since it was created "
            f"(found {mode:04o}, expected {expected:04o})."
        )
        self.path = path
        self.mode = mode
        self.expected = expected


class UnsupportedFileTypeError(BackupLogError):
    def __init__(self, path: str, kind: str) -> None:
        super().__init__(f"Unable to backup {kind} '{path}'.")
        self.path = path
        self.kind = kind


class ConfigError(BackupLogError):
    pass


class VersionDecodeError(BackupLogError, ValueError):
    pass
