"""Revalidation of recorded entries against the current filesystem.

Mismatches are soft: they mark entries invalid (so uninstall leaves them
alone) and are returned as findings, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Final

from installer_backup.application.ports import Reporter
from installer_backup.domain.log_format import (
    BACKED_UP_SYMLINK,
    INSTALLED_FILE,
    INSTALLED_SYMLINK,
    LogEntry,
    LogSession,
)
from installer_backup.infrastructure.backup_store import BackupStore
from installer_backup.infrastructure.crc import compute_crc

REASON_MISSING: Final[str] = "missing"
REASON_UNREADABLE: Final[str] = "unreadable"
REASON_CRC_MISMATCH: Final[str] = "crc-mismatch"
REASON_NOT_A_SYMLINK: Final[str] = "not-a-symlink"
REASON_TARGET_CHANGED: Final[str] = "target-changed"
REASON_SLOT_MISSING: Final[str] = "slot-missing"
REASON_SLOT_CRC_MISMATCH: Final[str] = "slot-crc-mismatch"
REASON_SUPPRESSED: Final[str] = "suppressed-by-changed-symlink"


@dataclass(frozen=True)
class IntegrityFinding:
    entry: LogEntry
    reason: str
    message: str


@dataclass(frozen=True)
class IntegrityReport:
    ok: bool
    findings: tuple[IntegrityFinding, ...]

    def reasons_for(self, filename: str) -> list[str]:
        return [f.reason for f in self.findings if f.entry.filename == filename]


class IntegrityChecker:
    def __init__(self, store: BackupStore, reporter: Reporter | None = None) -> None:
        self.store = store
        self.reporter = reporter

    def check(
        self,
        session: LogSession,
        *,
        suppress_backed_up_symlinks: bool = True,
        title: str = "Validating previous installation:",
    ) -> IntegrityReport:
        """Set ``valid`` on every entry and return what did not match.

        Per-entry validity is computed first; the symlink suppression rule
        runs afterwards as a separate pass so the outcome does not depend
        on entry order.
        """
        entries = session.entries
        findings: list[IntegrityFinding] = []
        changed_symlinks: set[str] = set()

        if self.reporter is not None:
            self.reporter.status_begin(title, "Validating")
        for i, entry in enumerate(entries):
            finding = self.check_entry(entry)
            entry.valid = finding is None
            if finding is not None:
                findings.append(finding)
                if finding.reason == REASON_TARGET_CHANGED:
                    changed_symlinks.add(entry.filename)
            if self.reporter is not None:
                self.reporter.status_update(i / len(entries), entry.filename)

        if suppress_backed_up_symlinks and changed_symlinks:
            for entry in entries:
                if entry.num == BACKED_UP_SYMLINK and entry.filename in changed_symlinks and entry.valid:
                    entry.valid = False
                    findings.append(
                        IntegrityFinding(
                            entry=entry,
                            reason=REASON_SUPPRESSED,
                            message=(
                                f"The backed up symbolic link '{entry.filename}' will not be restored, "
                                "because the installed symbolic link in its place has been changed."
                            ),
                        )
                    )
        if self.reporter is not None:
            self.reporter.status_end("done.")

        return IntegrityReport(ok=all(e.valid for e in entries), findings=tuple(findings))

    def check_entry(self, entry: LogEntry) -> IntegrityFinding | None:
        if entry.num == INSTALLED_FILE:
            return self._check_installed_file(entry)
        if entry.num == INSTALLED_SYMLINK:
            return self._check_installed_symlink(entry)
        if entry.num == BACKED_UP_SYMLINK:
            # the original link was deleted at backup time; nothing to compare
            return None
        return self._check_backup_slot(entry)

    def _check_installed_file(self, entry: LogEntry) -> IntegrityFinding | None:
        name = entry.filename
        if not os.path.exists(name):
            return IntegrityFinding(entry, REASON_MISSING, f"The installed file '{name}' no longer exists.")
        try:
            crc = compute_crc(name)
        except OSError as exc:
            return IntegrityFinding(entry, REASON_UNREADABLE, f"Unable to read installed file '{name}' ({exc.strerror or exc}).")
        if crc != entry.crc:
            return IntegrityFinding(
                entry,
                REASON_CRC_MISMATCH,
                f"The installed file '{name}' has a different checksum ({crc}) than when it was installed ({entry.crc}).",
            )
        return None

    def _check_installed_symlink(self, entry: LogEntry) -> IntegrityFinding | None:
        name = entry.filename
        if not os.path.lexists(name):
            return IntegrityFinding(entry, REASON_MISSING, f"The installed symbolic link '{name}' no longer exists.")
        if not os.path.islink(name):
            return IntegrityFinding(entry, REASON_NOT_A_SYMLINK, f"The installed symbolic link '{name}' is no longer a symbolic link.")
        try:
            target = os.readlink(name)
        except OSError as exc:
            return IntegrityFinding(entry, REASON_UNREADABLE, f"Unable to read symbolic link '{name}' ({exc.strerror or exc}).")
        if target != entry.target:
            return IntegrityFinding(
                entry,
                REASON_TARGET_CHANGED,
                f"The installed symbolic link '{name}' has target '{target}', "
                f"but it was installed with target '{entry.target}'.",
            )
        return None

    def _check_backup_slot(self, entry: LogEntry) -> IntegrityFinding | None:
        slot = self.store.slot_path(entry.num)
        if not slot.is_file():
            return IntegrityFinding(
                entry,
                REASON_SLOT_MISSING,
                f"The backed up file '{entry.filename}' (saved as '{slot}') no longer exists.",
            )
        try:
            crc = compute_crc(slot)
        except OSError as exc:
            return IntegrityFinding(entry, REASON_UNREADABLE, f"Unable to read backed up file '{slot}' ({exc.strerror or exc}).")
        if crc != entry.crc:
            return IntegrityFinding(
                entry,
                REASON_SLOT_CRC_MISMATCH,
                f"The backed up file '{entry.filename}' (saved as '{slot}') has a different checksum "
                f"({crc}) than when it was backed up ({entry.crc}).",
            )
        return None
