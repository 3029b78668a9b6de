"""Console reporter with a plain-text log file behind it."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import sys


def eprint(*args, **kwargs):
    print(*args, file=sys.stderr, **kwargs)


def now_ts() -> str:
    return datetime.now().strftime("%Y-%m-%dT%H:%M:%S")


class ConsoleReporter:
    """Print status to the terminal and keep the details in ``log_file``.

    If the log file cannot be written the reporter says so once and
    continues on the console only.
    """

    def __init__(self, log_file: Path | None = None, *, verbose: bool = False) -> None:
        self.log_file = log_file
        self.verbose = verbose
        self._log_writable = log_file is not None
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def _write_log(self, text: str) -> None:
        if not self._log_writable or self.log_file is None:
            return
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with self.log_file.open("a", encoding="utf-8", errors="surrogateescape") as f:
                f.write(f"{now_ts()} {text}\n")
        except OSError as exc:
            self._log_writable = False
            eprint(f"  ⚠️  Unable to write log file {self.log_file}: {exc}")

    def status_begin(self, title: str, short_title: str) -> None:
        print(f"\n⏳ {title}")
        self._write_log(f"-> {title}")

    def status_update(self, fraction: float, text: str | None = None) -> None:
        if self.verbose and text:
            print(f"  [{int(fraction * 100):3d}%] {text}")

    def status_end(self, text: str) -> None:
        print(f"  ✅ {text}" if text == "done." else f"  ⚠️  {text}")
        self._write_log(f"-> {text}")

    def log(self, text: str) -> None:
        self._write_log(f"-> {text}")
        if self.verbose:
            print(f"  {text}")

    def message(self, text: str) -> None:
        print(f"ℹ️  {text}")
        self._write_log(f"-> {text}")

    def warn(self, text: str) -> None:
        self.warnings.append(text)
        eprint(f"⚠️  WARNING: {text}")
        self._write_log(f"WARNING: {text}")

    def error(self, text: str) -> None:
        self.errors.append(text)
        eprint(f"❌ ERROR: {text}")
        self._write_log(f"ERROR: {text}")
