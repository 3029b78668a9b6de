"""Installer-facing operations on top of the backup log.

The installer calls into this service to find out what is installed,
to uninstall a previous installation before installing a new one, and
to run the standalone uninstaller. None of these block an installation
on a per-file problem; they report through the ``Reporter`` and return
booleans the installer can act on.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Callable

from installer_backup.application.ports import Reporter, SystemIntegration
from installer_backup.domain.errors import BackupLogError, VersionDecodeError
from installer_backup.domain.log_format import INSTALLED_FILE
from installer_backup.domain.version_codec import decode_version
from installer_backup.engine.integrity import IntegrityChecker
from installer_backup.engine.log_reader import LogReader
from installer_backup.engine.log_writer import LogWriter
from installer_backup.engine.uninstall import UninstallEngine, UninstallResult
from installer_backup.infrastructure.backup_store import BackupStore
from installer_backup.infrastructure.config import BackupConfig

_SKIP_DEPMOD_HELP = re.compile(r"^ +--skip-depmod$", re.MULTILINE)


@dataclass(frozen=True)
class InstalledVersion:
    version: str
    description: str


class InstallationService:
    def __init__(
        self,
        store: BackupStore,
        reporter: Reporter,
        integration: SystemIntegration,
        config: BackupConfig,
    ) -> None:
        self.store = store
        self.reporter = reporter
        self.integration = integration
        self.config = config
        self.reader = LogReader(store, reporter)
        self.checker = IntegrityChecker(store, reporter)
        self.engine = UninstallEngine(
            store,
            reporter,
            integration,
            kernel_name=config.kernel_name,
            kernel_modules=config.kernel_modules,
            skip_module_unload=config.skip_module_unload,
            directory_order=config.directory_order,  # type: ignore[arg-type]
            log_file_name=str(config.log_file_name),
        )

    def new_writer(self) -> LogWriter:
        return LogWriter(self.store)

    def resume_writer(self) -> LogWriter:
        return LogWriter.resume(self.store)

    def uninstall(self, version: str, *, skip_depmod: bool = False, rebuild_caches: bool = True) -> UninstallResult:
        return self.engine.uninstall(version, skip_depmod=skip_depmod, rebuild_caches=rebuild_caches)

    def installed_version(self) -> InstalledVersion | None:
        header = self.reader.peek_header()
        if header is None:
            return None
        try:
            version = decode_version(header.version)
        except VersionDecodeError as exc:
            self.reporter.log(f"Ignoring backup log with an unrecognized version line ({exc}).")
            return None
        return InstalledVersion(version=version, description=header.description)

    def report_installation(self) -> bool:
        info = self.installed_version()
        if info is None:
            self.reporter.message("There is no installation currently present.")
            return False
        self.reporter.message(f"The currently installed software is: '{info.description}' (version: {info.version}).")
        return True

    def find_installed_file(self, path: str | Path) -> bool:
        try:
            session = self.reader.open_session()
        except BackupLogError as exc:
            self.reporter.log(str(exc))
            return False
        wanted = str(path)
        return any(e.num == INSTALLED_FILE and e.filename == wanted for e in session.entries)

    def test_installed_files(self) -> bool:
        """Check the installed files against the log; every mismatch is an error."""
        try:
            session = self.reader.open_session()
        except BackupLogError as exc:
            self.reporter.error(str(exc))
            return False
        report = self.checker.check(
            session,
            suppress_backed_up_symlinks=False,
            title="Validating installation:",
        )
        for finding in report.findings:
            self.reporter.error(finding.message)
        return report.ok

    def check_for_existing_installation(
        self,
        new_version: str,
        confirm: Callable[[str], bool],
        *,
        kernel_module_only: bool = False,
    ) -> bool:
        """Return True if installing ``new_version`` may go ahead."""
        info = self.installed_version()

        if kernel_module_only:
            if info is None:
                self.reporter.error(
                    "No installation is currently present; a kernel-module-only installation "
                    "can only be done on top of an existing installation."
                )
                return False
            if info.version != new_version:
                self.reporter.error(
                    "A kernel-module-only installation requires an existing installation of the "
                    f"same version. The existing installation is {info.version}, but the kernel "
                    f"module is {new_version}."
                )
                return False
            return True

        if info is None:
            return True

        question = (
            f"There appears to already be an installation on your system (version: {info.version}). "
            f"As part of installing this version ({new_version}), the existing installation will be "
            "uninstalled. Are you sure you want to continue?"
        )
        if not confirm(question):
            self.reporter.log("Installation aborted.")
            return False
        return True

    def uninstall_existing(
        self,
        *,
        interactive: bool,
        skip_depmod: bool = False,
        rebuild_caches: bool = False,
    ) -> bool:
        """Uninstall whatever is installed. Never stops an installation: always True."""
        info = self.installed_version()
        if info is None:
            if interactive:
                self.reporter.message("There is no installation currently present.")
            return True

        result = self.uninstall(info.version, skip_depmod=skip_depmod, rebuild_caches=rebuild_caches)
        if result.ok:
            text = f"Uninstallation of existing installation: {info.description} ({info.version}) is complete."
            if interactive:
                self.reporter.message(text)
            else:
                self.reporter.log(text)
        else:
            self.reporter.error("Uninstallation failed.")
        return True

    def _supports_skip_depmod(self, uninstaller: Path) -> bool:
        outcome = self.integration.run_command([str(uninstaller), "-A"])
        return bool(_SKIP_DEPMOD_HELP.search(outcome.stdout or ""))

    def run_existing_uninstaller(self, *, no_kernel_module: bool = False) -> bool:
        """Uninstall via the standalone uninstaller, falling back to the backup log."""
        # a kernel module install runs depmod afterwards anyway
        skip_depmod = not no_kernel_module
        uninstaller = self.integration.find_util(self.config.uninstaller) if self.config.uninstaller else None

        if uninstaller is not None:
            skip_depmod = skip_depmod and self._supports_skip_depmod(uninstaller)
            argv = [str(uninstaller), "-s", f"--log-file-name={self.config.log_file_name}"]
            if skip_depmod:
                argv.append("--skip-depmod")
            self.reporter.log(f"Uninstalling the previous installation with {uninstaller}.")
            outcome = self.integration.run_command(argv)
            if outcome.returncode == 0:
                return True
            self.reporter.log(f"{uninstaller} failed; see {self.config.log_file_name} for more details.")
            output = "\n".join(s for s in (outcome.stdout, outcome.stderr) if s)
            if output.strip():
                self.reporter.log(f"The output from {uninstaller} was:\n{output}")

        return self.uninstall_existing(interactive=False, skip_depmod=skip_depmod)
