"""Text format of the backup log.

Line 1 is the version header, line 2 the description. Every following
record starts with a ``<tag>: <filename>`` line and continues with one or
two lines whose shape depends on the tag:

    0: <filename>           installed file
    <crc>

    1: <filename>           installed symlink
    <target>

    2: <filename>           backed up symlink
    <target>
    <mode> <uid> <gid>

    <n>: <filename>         backed up regular file, n >= BACKUP_SLOT_BASE
    <crc> <mode> <uid> <gid>

Modes are written as ``%04o``. There is no escaping: filenames and targets
must not contain newlines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Final, Literal

from installer_backup.domain.errors import LogParseError

INSTALLED_FILE: Final[int] = 0
INSTALLED_SYMLINK: Final[int] = 1
BACKED_UP_SYMLINK: Final[int] = 2
BACKUP_SLOT_BASE: Final[int] = 100

# Filenames are arbitrary bytes on POSIX; surrogateescape keeps them intact.
LOG_ENCODING: Final[str] = "utf-8"
LOG_ERRORS: Final[str] = "surrogateescape"

CRC_MAX: Final[int] = 0xFFFFFFFF
# (uid_t)-1 means "unchanged" to chown
ID_MAX: Final[int] = 0xFFFFFFFE

EntryKind = Literal["installed-file", "installed-symlink", "backed-up-symlink", "backup-slot"]


@dataclass
class LogEntry:
    num: int
    filename: str
    target: str | None = None
    crc: int | None = None
    mode: int | None = None
    uid: int | None = None
    gid: int | None = None
    valid: bool = True

    @property
    def kind(self) -> EntryKind:
        if self.num == INSTALLED_FILE:
            return "installed-file"
        if self.num == INSTALLED_SYMLINK:
            return "installed-symlink"
        if self.num == BACKED_UP_SYMLINK:
            return "backed-up-symlink"
        if self.num >= BACKUP_SLOT_BASE:
            return "backup-slot"
        raise ValueError(f"reserved record tag: {self.num}")

    @property
    def is_backup_slot(self) -> bool:
        return self.num >= BACKUP_SLOT_BASE


@dataclass
class LogSession:
    version: str
    description: str
    entries: list[LogEntry] = field(default_factory=list)

    def installed_files(self) -> list[LogEntry]:
        return [e for e in self.entries if e.num == INSTALLED_FILE]

    @property
    def all_valid(self) -> bool:
        return all(e.valid for e in self.entries)


def _single_line(value: str, what: str) -> str:
    if "\n" in value:
        raise ValueError(f"{what} must not contain a newline: {value!r}")
    return value


def encode_header(version_line: str, description: str) -> str:
    return f"{_single_line(version_line, 'version')}\n{_single_line(description, 'description')}\n"


def _record_head(num: int, filename: str) -> str:
    return f"{num}: {_single_line(filename, 'filename')}\n"


def encode_installed_file(filename: str, crc: int) -> str:
    return _record_head(INSTALLED_FILE, filename) + f"{crc:d}\n"


def encode_installed_symlink(filename: str, target: str) -> str:
    return _record_head(INSTALLED_SYMLINK, filename) + f"{_single_line(target, 'target')}\n"


def encode_backed_up_symlink(filename: str, target: str, mode: int, uid: int, gid: int) -> str:
    return (
        _record_head(BACKED_UP_SYMLINK, filename)
        + f"{_single_line(target, 'target')}\n"
        + f"{mode:04o} {uid:d} {gid:d}\n"
    )


def encode_backup_slot(slot: int, filename: str, crc: int, mode: int, uid: int, gid: int) -> str:
    if slot < BACKUP_SLOT_BASE:
        raise ValueError(f"backup slot must be >= {BACKUP_SLOT_BASE}: {slot}")
    return _record_head(slot, filename) + f"{crc:d} {mode:04o} {uid:d} {gid:d}\n"


def encode_entry(entry: LogEntry) -> str:
    kind = entry.kind
    if kind == "installed-file":
        return encode_installed_file(entry.filename, _required(entry.crc))
    if kind == "installed-symlink":
        return encode_installed_symlink(entry.filename, _required(entry.target))
    if kind == "backed-up-symlink":
        return encode_backed_up_symlink(
            entry.filename, _required(entry.target), _required(entry.mode), _required(entry.uid), _required(entry.gid)
        )
    return encode_backup_slot(
        entry.num, entry.filename, _required(entry.crc), _required(entry.mode), _required(entry.uid), _required(entry.gid)
    )


def _required(value):
    if value is None:
        raise ValueError("log entry is missing a field required by its tag")
    return value


class LineScanner:
    """Bounds-checked line reader over a fully loaded log buffer."""

    def __init__(self, data: bytes) -> None:
        lines = data.split(b"\n")
        if lines and lines[-1] == b"":
            lines.pop()
        self._lines = lines
        self._index = 0
        self._size = len(data)
        self._consumed = 0

    @property
    def line_number(self) -> int:
        """1-based number of the line most recently returned (0 before the first)."""
        return self._index

    def at_end(self) -> bool:
        return self._index >= len(self._lines)

    def next_line(self) -> str | None:
        if self.at_end():
            return None
        raw = self._lines[self._index]
        self._index += 1
        self._consumed += len(raw) + 1
        return raw.decode(LOG_ENCODING, LOG_ERRORS)

    @property
    def fraction(self) -> float:
        if not self._size:
            return 1.0
        return min(1.0, self._consumed / self._size)


def _is_digits(token: str) -> bool:
    return token.isascii() and token.isdigit()


def parse_record_header(line: str, line_no: int, log_path: str | None = None) -> tuple[int, str]:
    tag, sep, rest = line.partition(":")
    if not sep:
        raise LogParseError(line_no, log_path, "missing ':' in record header")
    if not _is_digits(tag):
        raise LogParseError(line_no, log_path, f"record tag {tag!r} is not a number")
    filename = rest.lstrip()
    if not filename:
        raise LogParseError(line_no, log_path, "empty filename")
    return int(tag), filename


def _numeric_fields(line: str, count: int, line_no: int, log_path: str | None) -> list[str]:
    fields = line.split()
    if len(fields) != count or not all(_is_digits(f) for f in fields):
        raise LogParseError(line_no, log_path, f"expected {count} numeric field(s), got {line!r}")
    return fields


def _parse_crc(token: str, line_no: int, log_path: str | None) -> int:
    crc = int(token, 10)
    if crc > CRC_MAX:
        raise LogParseError(line_no, log_path, f"checksum out of range: {token}")
    return crc


def _parse_id(token: str, line_no: int, log_path: str | None) -> int:
    value = int(token, 10)
    if value > ID_MAX:
        raise LogParseError(line_no, log_path, f"owner or group id out of range: {token}")
    return value


def _parse_mode(token: str, line_no: int, log_path: str | None) -> int:
    try:
        return int(token, 8)
    except ValueError:
        raise LogParseError(line_no, log_path, f"mode is not octal: {token}") from None


def _continuation(scanner: LineScanner, log_path: str | None) -> str:
    line = scanner.next_line()
    if line is None:
        raise LogParseError(scanner.line_number + 1, log_path, "record truncated")
    return line


def _parse_record(scanner: LineScanner, log_path: str | None) -> LogEntry:
    head = scanner.next_line()
    head_no = scanner.line_number
    if head is None:
        raise LogParseError(head_no + 1, log_path, "record expected")
    num, filename = parse_record_header(head, head_no, log_path)
    entry = LogEntry(num=num, filename=filename)

    if num == INSTALLED_FILE:
        line = _continuation(scanner, log_path)
        (crc,) = _numeric_fields(line, 1, scanner.line_number, log_path)
        entry.crc = _parse_crc(crc, scanner.line_number, log_path)
    elif num == INSTALLED_SYMLINK:
        entry.target = _continuation(scanner, log_path)
    elif num == BACKED_UP_SYMLINK:
        entry.target = _continuation(scanner, log_path)
        line = _continuation(scanner, log_path)
        mode, uid, gid = _numeric_fields(line, 3, scanner.line_number, log_path)
        entry.mode = _parse_mode(mode, scanner.line_number, log_path)
        entry.uid = _parse_id(uid, scanner.line_number, log_path)
        entry.gid = _parse_id(gid, scanner.line_number, log_path)
    elif num >= BACKUP_SLOT_BASE:
        line = _continuation(scanner, log_path)
        crc, mode, uid, gid = _numeric_fields(line, 4, scanner.line_number, log_path)
        entry.crc = _parse_crc(crc, scanner.line_number, log_path)
        entry.mode = _parse_mode(mode, scanner.line_number, log_path)
        entry.uid = _parse_id(uid, scanner.line_number, log_path)
        entry.gid = _parse_id(gid, scanner.line_number, log_path)
    else:
        raise LogParseError(head_no, log_path, f"reserved record tag {num}")
    return entry


def parse_log(
    data: bytes,
    *,
    log_path: str | None = None,
    on_progress: Callable[[float], None] | None = None,
) -> LogSession:
    """Parse a complete log buffer. Any malformed record aborts the whole parse."""
    scanner = LineScanner(data)
    version = scanner.next_line()
    if version is None:
        raise LogParseError(1, log_path, "missing version line")
    description = scanner.next_line()
    if description is None:
        raise LogParseError(2, log_path, "missing description line")

    entries: list[LogEntry] = []
    while not scanner.at_end():
        entries.append(_parse_record(scanner, log_path))
        if on_progress is not None:
            on_progress(scanner.fraction)
    return LogSession(version=version, description=description, entries=entries)
