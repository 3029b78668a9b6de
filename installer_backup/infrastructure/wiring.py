from __future__ import annotations

from installer_backup.application.installation_service import InstallationService
from installer_backup.application.ports import Reporter, SystemIntegration
from installer_backup.infrastructure.backup_store import BackupStore
from installer_backup.infrastructure.config import BackupConfig
from installer_backup.infrastructure.reporting import ConsoleReporter
from installer_backup.infrastructure.system_integration import LocalSystemIntegration


def build_service(
    config: BackupConfig,
    *,
    reporter: Reporter | None = None,
    integration: SystemIntegration | None = None,
) -> InstallationService:
    reporter = reporter if reporter is not None else ConsoleReporter(config.log_file_name)
    if integration is None:
        integration = LocalSystemIntegration(
            reporter,
            hooks_dir=config.hooks_dir,
            utils=config.utils,
            dkms_module=config.dkms_module,
        )
    return InstallationService(BackupStore(config.backup_root), reporter, integration, config)
