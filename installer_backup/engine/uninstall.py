"""Replay of the backup log in reverse: remove what was installed, restore what was displaced.

Pass A deletes installed files and symlinks, Pass B puts backed up files
and symlinks back. Entries the integrity check marked invalid are skipped
in both passes. Per-entry failures are collected and reported at the end;
only a missing, unreadable or tampered log fails the uninstall as a whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
import stat
from typing import Sequence

from installer_backup.application.ports import Reporter, SystemIntegration
from installer_backup.domain.errors import BackupLogError, NoBackupError
from installer_backup.domain.log_format import BACKED_UP_SYMLINK, INSTALLED_FILE, INSTALLED_SYMLINK, LogEntry
from installer_backup.engine.integrity import IntegrityChecker
from installer_backup.engine.janitor import DirectoryJanitor, DirectoryOrder
from installer_backup.engine.log_reader import LogReader
from installer_backup.infrastructure.backup_store import BackupStore
from installer_backup.infrastructure.fs_ops import move_file

ALTERED_INSTALLATION = (
    "The installation has been altered since it was initially installed; this may happen, "
    "for example, if the same software has since been installed through a mechanism other "
    "than this installer (such as the distribution's native package management system). "
    "The uninstall will proceed as best it can."
)

NOTHING_TO_UNINSTALL = "No installation backed up; nothing to uninstall."


@dataclass
class UninstallResult:
    ok: bool
    nothing_to_uninstall: bool = False
    version: str | None = None
    description: str | None = None
    integrity_ok: bool = True
    error: str | None = None
    removal_failures: list[str] = field(default_factory=list)
    restore_failures: list[str] = field(default_factory=list)
    directory_failures: list[str] = field(default_factory=list)
    integration_warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return (
            self.ok
            and self.integrity_ok
            and not self.removal_failures
            and not self.restore_failures
            and not self.directory_failures
        )


class UninstallEngine:
    def __init__(
        self,
        store: BackupStore,
        reporter: Reporter,
        integration: SystemIntegration,
        *,
        kernel_name: str,
        kernel_modules: Sequence[str] = (),
        skip_module_unload: bool = False,
        directory_order: DirectoryOrder = "length",
        log_file_name: str | None = None,
    ) -> None:
        self.store = store
        self.reporter = reporter
        self.integration = integration
        self.kernel_name = kernel_name
        self.kernel_modules = tuple(kernel_modules)
        self.skip_module_unload = skip_module_unload
        self.log_file_name = log_file_name
        self.reader = LogReader(store, reporter)
        self.checker = IntegrityChecker(store, reporter)
        self.janitor = DirectoryJanitor(store, reporter, order=directory_order)

    def _see_log(self) -> str:
        return f" See {self.log_file_name} for details." if self.log_file_name else ""

    def uninstall(self, version: str, *, skip_depmod: bool = False, rebuild_caches: bool = True) -> UninstallResult:
        try:
            session = self.reader.open_session()
        except NoBackupError:
            self.reporter.message(NOTHING_TO_UNINSTALL)
            return UninstallResult(ok=True, nothing_to_uninstall=True)
        except BackupLogError as exc:
            self.reporter.error(str(exc))
            return UninstallResult(ok=False, error=str(exc))

        report = self.checker.check(session)
        for finding in report.findings:
            self.reporter.log(finding.message)
        if not report.ok:
            self.reporter.warn(ALTERED_INSTALLATION + self._see_log())

        result = UninstallResult(
            ok=True,
            version=session.version,
            description=session.description,
            integrity_ok=report.ok,
        )

        self._run_hook("pre-uninstall", result)
        self.reporter.status_begin(f"Uninstalling {session.description} ({session.version}):", "Uninstalling")

        if self.integration.dkms_module_installed(version):
            self.reporter.log("DKMS module detected; removing...")
            if not self.integration.remove_dkms_module(version):
                self._integration_warning(result, "Failed to remove installed DKMS module!")

        result.removal_failures = self.remove_installed(session.entries)
        result.restore_failures = self.restore_backups(session.entries)

        if result.removal_failures:
            self.reporter.warn("Failed to remove some installed files/symlinks." + self._see_log())
        if result.restore_failures:
            self.reporter.warn(
                "Failed to restore some backed up files/symlinks, and/or their attributes." + self._see_log()
            )

        janitor = self.janitor.run()
        result.directory_failures = list(janitor.failed)
        if not janitor.ok:
            self.reporter.warn("Failed to delete some directories." + self._see_log())
            self.reporter.log("Unable to delete directories created by previous installation.")

        self.reporter.status_end("done.")

        try:
            self.store.destroy()
        except OSError as exc:
            self.reporter.log(f"Unable to remove backup directory '{self.store.root}' ({exc.strerror or exc}).")

        if not self.skip_module_unload:
            self._unload_kernel_modules(result)
        if rebuild_caches:
            self._rebuild_caches(result, skip_depmod=skip_depmod)

        self._run_hook("post-uninstall", result)
        return result

    def remove_installed(self, entries: Sequence[LogEntry]) -> list[str]:
        """Pass A. Returns the filenames that could not be removed."""
        failures: list[str] = []
        total = len(entries) * 2
        for i, entry in enumerate(entries):
            if not entry.valid or entry.num not in (INSTALLED_FILE, INSTALLED_SYMLINK):
                continue
            what = "file" if entry.num == INSTALLED_FILE else "symlink"
            try:
                os.unlink(entry.filename)
            except OSError as exc:
                self.reporter.log(f"Unable to remove installed {what} '{entry.filename}' ({exc.strerror or exc}).")
                failures.append(entry.filename)
            self.reporter.status_update(i / total, entry.filename)
        return failures

    def restore_backups(self, entries: Sequence[LogEntry]) -> list[str]:
        """Pass B. Returns the filenames that could not be fully restored."""
        failures: list[str] = []
        n = len(entries)
        for i, entry in enumerate(entries):
            if not entry.valid:
                continue
            if entry.num == BACKED_UP_SYMLINK:
                restored = self._restore_symlink(entry)
            elif entry.is_backup_slot:
                restored = self._restore_file(entry)
            else:
                continue
            if not restored:
                failures.append(entry.filename)
            self.reporter.status_update((i + n) / (n * 2), entry.filename)
        return failures

    def _restore_symlink(self, entry: LogEntry) -> bool:
        try:
            os.symlink(entry.target, entry.filename)
        except OSError as exc:
            self.reporter.log(
                f"Unable to restore symbolic link {entry.filename} -> {entry.target} ({exc.strerror or exc})."
            )
            return False
        try:
            os.chown(entry.filename, entry.uid, entry.gid, follow_symlinks=False)
        except (OSError, OverflowError) as exc:
            self.reporter.log(
                f"Unable to restore owner ({entry.uid}) and group ({entry.gid}) for symbolic link "
                f"'{entry.filename}' ({getattr(exc, 'strerror', None) or exc})."
            )
            return False
        return True

    def _restore_file(self, entry: LogEntry) -> bool:
        slot = self.store.slot_path(entry.num)
        try:
            move_file(slot, entry.filename)
        except OSError as exc:
            self.reporter.log(f"Unable to restore file '{entry.filename}' from '{slot}' ({exc.strerror or exc}).")
            return False
        try:
            os.chown(entry.filename, entry.uid, entry.gid)
        except (OSError, OverflowError) as exc:
            self.reporter.log(
                f"Unable to restore owner ({entry.uid}) and group ({entry.gid}) for file "
                f"'{entry.filename}' ({getattr(exc, 'strerror', None) or exc})."
            )
            return False
        mode = stat.S_IMODE(entry.mode or 0)
        try:
            os.chmod(entry.filename, mode)
        except OSError as exc:
            self.reporter.log(f"Unable to restore permissions {mode:04o} for file '{entry.filename}' ({exc.strerror or exc}).")
            return False
        return True

    def _run_hook(self, name: str, result: UninstallResult) -> None:
        if not self.integration.run_hook(name):
            self._integration_warning(result, f"The {name} hook failed.")

    def _integration_warning(self, result: UninstallResult, text: str) -> None:
        self.reporter.warn(text)
        result.integration_warnings.append(text)

    def _unload_kernel_modules(self, result: UninstallResult) -> None:
        # the kernel may lack unload support, or the module was never loaded
        for module in self.kernel_modules:
            if not self.integration.kernel_module_loaded(module):
                continue
            if not self.integration.unload_kernel_module(module):
                text = f"Unable to unload the kernel module '{module}'."
                self.reporter.log(text)
                result.integration_warnings.append(text)

    def _rebuild_caches(self, result: UninstallResult, *, skip_depmod: bool) -> None:
        self.reporter.log(f"Running {'' if skip_depmod else 'depmod and '}ldconfig:")
        ok = True
        if not skip_depmod:
            ok = self.integration.rebuild_module_dependencies(self.kernel_name) and ok
        ok = self.integration.rebuild_library_cache() and ok
        if ok:
            self.reporter.log("done.")
            return
        self.reporter.log("error!")
        self._integration_warning(
            result,
            "An error occurred while running depmod or ldconfig after uninstallation: your system may "
            "have stale state involving recently uninstalled files.",
        )
