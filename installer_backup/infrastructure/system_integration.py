"""Host integration: hooks, depmod/ldconfig, kernel modules and DKMS.

All process execution of the uninstall path goes through this module.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import shlex
import shutil
import subprocess
from typing import Callable, Mapping, Sequence

from installer_backup.application.ports import Reporter


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(argv: Sequence[str]) -> CmdResult:
    argv_list = [str(a) for a in argv]
    try:
        p = subprocess.run(
            argv_list,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
        )
    except OSError as exc:
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(exc))
    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


class LocalSystemIntegration:
    def __init__(
        self,
        reporter: Reporter,
        *,
        hooks_dir: Path,
        utils: Mapping[str, str] | None = None,
        dkms_module: str | None = None,
        runner: Callable[[Sequence[str]], CmdResult] = run_cmd,
        proc_modules: Path = Path("/proc/modules"),
    ) -> None:
        self.reporter = reporter
        self.hooks_dir = hooks_dir
        self.utils = dict(utils or {})
        self.dkms_module = dkms_module
        self.runner = runner
        self.proc_modules = proc_modules

    def find_util(self, name: str) -> Path | None:
        configured = self.utils.get(name)
        if configured:
            p = Path(configured)
            return p if p.is_file() and os.access(p, os.X_OK) else None
        found = shutil.which(name)
        return Path(found) if found else None

    def run_command(self, argv: Sequence[str]) -> CmdResult:
        self.reporter.log(f"Executing: {_fmt_argv([str(a) for a in argv])}")
        result = self.runner(argv)
        output = "\n".join(s.strip() for s in (result.stdout, result.stderr) if s and s.strip())
        if result.returncode != 0:
            self.reporter.log(f"Command exited with status {result.returncode}.")
        if output:
            self.reporter.log(output)
        return result

    def _run_util(self, name: str, *args: str) -> bool:
        path = self.find_util(name)
        if path is None:
            self.reporter.log(f"Unable to find the '{name}' utility.")
            return False
        return self.run_command([str(path), *args]).returncode == 0

    def run_hook(self, name: str) -> bool:
        hook = self.hooks_dir / name
        if not hook.is_file() or not os.access(hook, os.X_OK):
            return True
        self.reporter.log(f"Running {name} hook '{hook}'.")
        return self.run_command([str(hook)]).returncode == 0

    def rebuild_module_dependencies(self, kernel_name: str) -> bool:
        return self._run_util("depmod", "-a", kernel_name)

    def rebuild_library_cache(self) -> bool:
        return self._run_util("ldconfig")

    def kernel_module_loaded(self, name: str) -> bool:
        wanted = name.replace("-", "_")
        try:
            text = self.proc_modules.read_text(encoding="utf-8")
        except OSError:
            return False
        for line in text.splitlines():
            fields = line.split()
            if fields and fields[0] == wanted:
                return True
        return False

    def unload_kernel_module(self, name: str) -> bool:
        return self._run_util("rmmod", name)

    def dkms_module_installed(self, version: str) -> bool:
        if not self.dkms_module:
            return False
        dkms = self.find_util("dkms")
        if dkms is None:
            return False
        result = self.run_command([str(dkms), "status", "-m", self.dkms_module, "-v", version])
        return result.returncode == 0 and bool(result.stdout.strip())

    def remove_dkms_module(self, version: str) -> bool:
        if not self.dkms_module:
            return False
        return self._run_util("dkms", "remove", "-m", self.dkms_module, "-v", version, "--all")
