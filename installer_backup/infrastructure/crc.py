from __future__ import annotations

import zlib
from pathlib import Path

_CHUNK = 1024 * 1024


def compute_crc(path: Path | str) -> int:
    """CRC-32 of the file contents as an unsigned 32-bit integer. Raises OSError."""
    crc = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            crc = zlib.crc32(chunk, crc)
    return crc & 0xFFFFFFFF
