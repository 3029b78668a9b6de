from __future__ import annotations

import os
from pathlib import Path

from installer_backup.domain.errors import ConfigError


class NotAbsoluteError(ConfigError):
    pass


def normalize_absolute_path(raw: str, *, purpose: str) -> Path:
    token = str(raw or "").strip()
    if not token:
        raise NotAbsoluteError(f"{purpose}: empty path")
    candidate = Path(token).expanduser()
    if not candidate.is_absolute():
        raise NotAbsoluteError(f"{purpose}: path must be absolute")
    return Path(os.path.normpath(os.path.abspath(str(candidate))))
