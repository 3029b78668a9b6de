"""Backwards compatible version header.

Older readers assume the ``MAJOR.MINOR-PATCH`` form and only look at the
leading digits after ``1.0-``. The header therefore carries the digits of
the real version as the legacy token, followed by the real version in
parentheses, e.g. ``1.0-105917 (105.9.17)``.
"""

from __future__ import annotations

from installer_backup.domain.errors import VersionDecodeError

LEGACY_PREFIX = "1.0-"


def encode_version(version: str) -> str:
    token = "".join(ch for ch in version if ch in "0123456789")
    return f"{LEGACY_PREFIX}{token} ({version})"


def decode_version(line: str) -> str:
    start = line.find("(")
    if start == -1:
        raise VersionDecodeError(f"no version in parentheses: {line!r}")
    end = line.find(")", start + 1)
    if end == -1:
        raise VersionDecodeError(f"unterminated version in parentheses: {line!r}")
    return line[start + 1 : end]
