"""Command line entry point for querying and uninstalling a logged installation."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

from installer_backup.domain.errors import ConfigError
from installer_backup.infrastructure.config import load_config
from installer_backup.infrastructure.path_contract import normalize_absolute_path
from installer_backup.infrastructure.reporting import ConsoleReporter, eprint
from installer_backup.infrastructure.wiring import build_service

VERSION = "1.0.0"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_UNINSTALL_FAILED = 3


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Inspect or uninstall an installation recorded in the backup log.")
    action = p.add_mutually_exclusive_group(required=True)
    action.add_argument("--uninstall", action="store_true", help="Uninstall the currently installed software.")
    action.add_argument("--info", action="store_true", help="Report the currently installed version.")
    action.add_argument(
        "--sanity",
        action="store_true",
        help="Check that every installed file still matches what was installed.",
    )
    action.add_argument(
        "--find-installed-file",
        metavar="PATH",
        default=None,
        help="Exit 0 if PATH was installed as a regular file, 1 otherwise.",
    )
    p.add_argument("--config", type=Path, default=None, help="YAML config file (default: auto-detect).")
    p.add_argument("--backup-root", default=None, help="Override the backup directory.")
    p.add_argument("--log-file-name", default=None, help="Override the uninstall log file.")
    p.add_argument("--skip-depmod", action="store_true", help="Do not run depmod after uninstalling.")
    p.add_argument(
        "--skip-module-unload",
        action="store_true",
        help="Do not unload kernel modules after uninstalling.",
    )
    p.add_argument("--verbose", action="store_true", help="Print progress details.")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    try:
        config = load_config(args.config)
        config = config.with_overrides(
            backup_root=(
                normalize_absolute_path(args.backup_root, purpose="--backup-root") if args.backup_root else None
            ),
            log_file_name=(
                normalize_absolute_path(args.log_file_name, purpose="--log-file-name") if args.log_file_name else None
            ),
            skip_module_unload=True if args.skip_module_unload else None,
        )
    except ConfigError as exc:
        eprint(f"❌ {exc}")
        return EXIT_CONFIG

    reporter = ConsoleReporter(config.log_file_name, verbose=args.verbose)
    service = build_service(config, reporter=reporter)

    if args.info:
        return EXIT_OK if service.report_installation() else EXIT_FAILED

    if args.find_installed_file is not None:
        return EXIT_OK if service.find_installed_file(args.find_installed_file) else EXIT_FAILED

    print("=" * 60)
    print("Installer Backup Uninstaller")
    print(f"Version: {VERSION}")
    print(f"Mode: {'UNINSTALL' if args.uninstall else 'SANITY CHECK'}")
    print(f"Backup root: {config.backup_root}")
    print("=" * 60)

    if args.sanity:
        if service.test_installed_files():
            print("\n✅ All installed files are consistent.")
            return EXIT_OK
        eprint("\n❌ The installation does not match the backup log.")
        return EXIT_FAILED

    info = service.installed_version()
    result = service.uninstall(info.version if info is not None else "", skip_depmod=args.skip_depmod)
    if result.nothing_to_uninstall:
        return EXIT_OK
    if not result.ok:
        eprint(f"\n❌ Uninstallation failed. See {config.log_file_name} for details.")
        return EXIT_UNINSTALL_FAILED

    print("\n" + "=" * 60)
    if result.clean:
        print(f"🎉 Uninstallation of {result.description} ({result.version}) is complete.")
    else:
        print(f"⚠️  Uninstallation of {result.description} ({result.version}) completed with warnings.")
        print(f"   See {config.log_file_name} for details.")
    print("=" * 60)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
