"""Pytest configuration for backup log and uninstall tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from installer_backup.engine.log_writer import LogWriter
from installer_backup.engine.uninstall import UninstallEngine
from installer_backup.infrastructure.backup_store import BackupStore
from tests.util import FakeSystemIntegration, RecordingReporter


@pytest.fixture
def store(tmp_path: Path) -> BackupStore:
    return BackupStore(tmp_path / "backup")


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def integration() -> FakeSystemIntegration:
    return FakeSystemIntegration()


@pytest.fixture
def writer(store: BackupStore) -> LogWriter:
    w = LogWriter(store)
    w.init("1.2.3", "Demo Software")
    return w


@pytest.fixture
def make_engine(store: BackupStore, reporter: RecordingReporter, integration: FakeSystemIntegration):
    def _make(**kwargs) -> UninstallEngine:
        kwargs.setdefault("kernel_name", "6.1.0-test")
        return UninstallEngine(store, reporter, integration, **kwargs)

    return _make
