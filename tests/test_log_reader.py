from __future__ import annotations

import os
from pathlib import Path

import pytest

from installer_backup.domain.errors import LogParseError, NoBackupError, PermissionTamperError
from installer_backup.engine.log_reader import LogHeader, LogReader
from installer_backup.engine.log_writer import LogWriter
from installer_backup.infrastructure.backup_store import BackupStore
from tests.util import RecordingReporter, write_file, write_raw_log


@pytest.mark.backup
def test_open_session_returns_what_the_writer_recorded(
    store: BackupStore, writer: LogWriter, reporter: RecordingReporter, tmp_path: Path
):
    path = write_file(tmp_path / "a.conf", b"a")
    writer.backup_file(path)
    write_file(path, b"b")
    writer.log_installed_file(path)

    session = LogReader(store, reporter).open_session()

    assert session.version == "1.0-123 (1.2.3)"
    assert session.description == "Demo Software"
    assert [e.num for e in session.entries] == [100, 0]
    assert ("status_begin", "Parsing log file:") in reporter.events
    assert reporter.events[-1] == ("status_end", "done.")
    assert reporter.fractions and reporter.fractions[-1] == 1.0


@pytest.mark.backup
def test_missing_root_is_reported_as_no_backup(store: BackupStore):
    with pytest.raises(NoBackupError):
        LogReader(store).open_session()


@pytest.mark.backup
def test_tampered_log_permissions_refuse_to_parse(store: BackupStore, writer: LogWriter):
    os.chmod(store.log_path, 0o644)
    with pytest.raises(PermissionTamperError) as exc:
        LogReader(store).open_session()
    assert exc.value.path == str(store.log_path)


@pytest.mark.backup
def test_tampered_root_permissions_refuse_to_parse(store: BackupStore, writer: LogWriter):
    os.chmod(store.root, 0o755)
    with pytest.raises(PermissionTamperError):
        LogReader(store).open_session()


@pytest.mark.backup
def test_truncated_log_fails_with_line_number(store: BackupStore, reporter: RecordingReporter):
    write_raw_log(store, "1.0-1 (1)\nDemo\n0: /usr/lib/libfoo.so\n")

    with pytest.raises(LogParseError) as exc:
        LogReader(store, reporter).open_session()

    assert exc.value.line == 4
    assert reporter.events[-1] == ("status_end", "error.")


@pytest.mark.backup
def test_peek_header_reads_only_first_two_lines(store: BackupStore):
    write_raw_log(store, "1.0-1 (1.0)\nDemo\n0: broken record without crc\n")
    assert LogReader(store).peek_header() == LogHeader(version="1.0-1 (1.0)", description="Demo")


@pytest.mark.backup
@pytest.mark.parametrize("text", ["", "1.0-1 (1.0)", "1.0-1 (1.0)\n"])
def test_peek_header_needs_two_lines(store: BackupStore, text: str):
    write_raw_log(store, text)
    assert LogReader(store).peek_header() is None


@pytest.mark.backup
def test_peek_header_without_backup_is_none(store: BackupStore):
    assert LogReader(store).peek_header() is None
