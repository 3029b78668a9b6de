from __future__ import annotations

import errno
import os
from pathlib import Path
import shutil


def move_file(src: Path | str, dst: Path | str) -> None:
    """Rename ``src`` to ``dst``, copying across filesystem boundaries.

    The backup root and the recorded paths may live on different mounts; in
    that case the content is copied (with metadata) and the source unlinked.
    """
    try:
        os.rename(str(src), str(dst))
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        shutil.copy2(str(src), str(dst), follow_symlinks=False)
        os.unlink(str(src))


def remove_tree(path: Path) -> None:
    if path.is_symlink():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
