from __future__ import annotations

import pytest

from installer_backup.domain.errors import LogParseError
from installer_backup.domain.log_format import (
    BACKED_UP_SYMLINK,
    INSTALLED_FILE,
    INSTALLED_SYMLINK,
    LineScanner,
    LogEntry,
    encode_backed_up_symlink,
    encode_backup_slot,
    encode_entry,
    encode_header,
    encode_installed_file,
    encode_installed_symlink,
    parse_log,
    parse_record_header,
)

HEADER = "1.0-123 (1.2.3)\nDemo Software\n"


@pytest.mark.backup
def test_encoders_produce_documented_line_layout():
    assert encode_header("1.0-123 (1.2.3)", "Demo") == "1.0-123 (1.2.3)\nDemo\n"
    assert encode_installed_file("/usr/lib/libfoo.so", 3735928559) == "0: /usr/lib/libfoo.so\n3735928559\n"
    assert encode_installed_symlink("/usr/lib/libfoo.so.1", "libfoo.so") == "1: /usr/lib/libfoo.so.1\nlibfoo.so\n"
    assert encode_backed_up_symlink("/usr/bin/x", "/opt/x", 0o777, 0, 0) == "2: /usr/bin/x\n/opt/x\n0777 0 0\n"
    assert encode_backup_slot(100, "/etc/foo.conf", 42, 0o644, 1000, 100) == "100: /etc/foo.conf\n42 0644 1000 100\n"


@pytest.mark.backup
@pytest.mark.parametrize(
    "call",
    [
        lambda: encode_installed_file("/a\nb", 1),
        lambda: encode_installed_symlink("/a", "b\nc"),
        lambda: encode_header("1.0-1 (1)", "two\nlines"),
    ],
)
def test_encoders_reject_embedded_newlines(call):
    with pytest.raises(ValueError):
        call()


@pytest.mark.backup
def test_encode_backup_slot_rejects_reserved_tags():
    with pytest.raises(ValueError):
        encode_backup_slot(99, "/a", 1, 0o644, 0, 0)


@pytest.mark.backup
def test_parse_log_reads_every_record_kind():
    text = (
        HEADER
        + encode_backup_slot(100, "/etc/foo.conf", 42, 0o640, 1000, 100)
        + encode_backed_up_symlink("/usr/bin/x", "/opt/x", 0o777, 0, 0)
        + encode_installed_file("/etc/foo.conf", 7)
        + encode_installed_symlink("/usr/bin/x", "/opt/y")
    )
    session = parse_log(text.encode("utf-8"))

    assert session.version == "1.0-123 (1.2.3)"
    assert session.description == "Demo Software"
    assert [e.num for e in session.entries] == [100, BACKED_UP_SYMLINK, INSTALLED_FILE, INSTALLED_SYMLINK]

    slot, link, installed, installed_link = session.entries
    assert (slot.filename, slot.crc, slot.mode, slot.uid, slot.gid) == ("/etc/foo.conf", 42, 0o640, 1000, 100)
    assert (link.target, link.mode, link.uid, link.gid) == ("/opt/x", 0o777, 0, 0)
    assert installed.crc == 7
    assert installed_link.target == "/opt/y"
    assert session.installed_files() == [installed]
    assert all(e.valid for e in session.entries)


@pytest.mark.backup
def test_encode_entry_matches_parsed_entry():
    text = HEADER + encode_backup_slot(104, "/opt/a b", 1, 0o600, 5, 6)
    entry = parse_log(text.encode("utf-8")).entries[0]
    assert entry.kind == "backup-slot"
    assert entry.is_backup_slot
    assert encode_entry(entry) == "104: /opt/a b\n1 0600 5 6\n"


@pytest.mark.backup
def test_header_only_log_has_no_entries():
    session = parse_log(HEADER.encode("utf-8"))
    assert session.entries == []


@pytest.mark.backup
def test_filename_keeps_inner_whitespace_and_drops_leading():
    assert parse_record_header("0:    /opt/my dir/file ", 3) == (0, "/opt/my dir/file ")
    assert parse_record_header("101: /opt/a:b:c", 3) == (101, "/opt/a:b:c")


@pytest.mark.backup
@pytest.mark.parametrize(
    "line",
    ["0 /missing/colon", ": /no/tag", "x1: /bad/tag", "0:", "0:    "],
)
def test_parse_record_header_rejects_malformed_lines(line: str):
    with pytest.raises(LogParseError) as exc:
        parse_record_header(line, 7)
    assert exc.value.line == 7


@pytest.mark.backup
def test_truncated_record_reports_the_missing_line():
    data = (HEADER + "0: /usr/lib/libfoo.so\n").encode("utf-8")
    with pytest.raises(LogParseError) as exc:
        parse_log(data, log_path="/var/lib/backup/log")
    assert exc.value.line == 4
    assert "line 4 of '/var/lib/backup/log'" in str(exc.value)


@pytest.mark.backup
@pytest.mark.parametrize("tag", [3, 50, 99])
def test_reserved_tags_are_rejected_at_the_header_line(tag: int):
    data = (HEADER + f"{tag}: /a\n1\n").encode("utf-8")
    with pytest.raises(LogParseError) as exc:
        parse_log(data)
    assert exc.value.line == 3


@pytest.mark.backup
@pytest.mark.parametrize(
    "record",
    [
        "0: /a\nnot-a-number\n",
        "0: /a\n4294967296\n",
        "100: /a\n1 0644 0\n",
        "100: /a\n1 0899 0 0\n",
        "2: /a\n/b\n0777 0\n",
    ],
)
def test_malformed_continuation_lines_are_rejected(record: str):
    with pytest.raises(LogParseError) as exc:
        parse_log((HEADER + record).encode("utf-8"))
    assert exc.value.line >= 4


@pytest.mark.backup
def test_missing_description_line_is_an_error():
    with pytest.raises(LogParseError) as exc:
        parse_log(b"1.0-1 (1)\n")
    assert exc.value.line == 2


@pytest.mark.backup
def test_non_utf8_filenames_survive_parsing():
    raw = HEADER.encode("utf-8") + b"0: /opt/caf\xe9\n1\n"
    entry = parse_log(raw).entries[0]
    assert entry.filename.encode("utf-8", "surrogateescape") == b"/opt/caf\xe9"


@pytest.mark.backup
def test_line_scanner_tracks_progress_and_line_numbers():
    scanner = LineScanner(b"a\nbb\nccc\n")
    assert scanner.line_number == 0
    assert scanner.next_line() == "a"
    assert scanner.next_line() == "bb"
    assert scanner.line_number == 2
    assert 0.0 < scanner.fraction < 1.0
    assert scanner.next_line() == "ccc"
    assert scanner.at_end()
    assert scanner.next_line() is None
    assert scanner.fraction == 1.0


@pytest.mark.backup
def test_reserved_tag_has_no_kind():
    with pytest.raises(ValueError):
        LogEntry(num=5, filename="/a").kind


@pytest.mark.backup
@pytest.mark.parametrize(
    ("record", "line"),
    [
        ("100: /a\n0 0644 99999999999 0\n", 4),
        ("100: /a\n0 0644 0 4294967295\n", 4),
        ("2: /a\n/b\n0777 0 4294967296\n", 5),
        ("2: /a\n/b\n0777 99999999999 0\n", 5),
    ],
)
def test_owner_and_group_ids_are_bounded(record: str, line: int):
    with pytest.raises(LogParseError) as exc:
        parse_log((HEADER + record).encode("utf-8"))
    assert exc.value.line == line


@pytest.mark.backup
def test_largest_owner_and_group_ids_are_accepted():
    text = HEADER + "100: /a\n0 0644 4294967294 4294967294\n"
    entry = parse_log(text.encode("utf-8")).entries[0]
    assert (entry.uid, entry.gid) == (4294967294, 4294967294)


@pytest.mark.backup
@pytest.mark.parametrize(
    "entry",
    [
        LogEntry(num=INSTALLED_FILE, filename="/opt/my dir/a:b c", crc=4294967295),
        LogEntry(num=INSTALLED_SYMLINK, filename="/opt/my dir/link: one", target="../target dir/x:y"),
        LogEntry(
            num=BACKED_UP_SYMLINK, filename="/usr/bin/a b:c", target="/opt/d e:f", mode=0o777, uid=0, gid=0
        ),
        LogEntry(num=137, filename="/etc/conf dir/x:1 2", crc=12345, mode=0o4755, uid=1000, gid=100),
    ],
)
def test_every_record_shape_survives_encode_and_parse(entry: LogEntry):
    parsed = parse_log((HEADER + encode_entry(entry)).encode("utf-8")).entries

    assert len(parsed) == 1
    got = parsed[0]
    assert (got.num, got.filename, got.target, got.crc, got.mode, got.uid, got.gid) == (
        entry.num,
        entry.filename,
        entry.target,
        entry.crc,
        entry.mode,
        entry.uid,
        entry.gid,
    )
