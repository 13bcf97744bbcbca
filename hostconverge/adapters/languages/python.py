"""
Python adapter — virtual environments and pip.

One VirtualEnv instance wraps one venv directory. Creation uses the
system ``python3 -m venv``; everything else runs the venv's own
interpreter so the host's pip is never touched.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from hostconverge.adapters.base import Adapter
from hostconverge.adapters.shell.command import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

# Proves the interpreter can resolve its own prefix and site-packages.
SMOKE_SCRIPT = """\
import sys
import sysconfig
assert sys.prefix, "Missing venv prefix"
assert sysconfig.get_paths().get("purelib"), "Missing site-packages"
"""

BOOTSTRAP_PACKAGES = ("pip", "setuptools", "wheel")

_PIP_QUIET = "--disable-pip-version-check"


class VirtualEnv(Adapter):
    """A Python virtual environment at ``path``.

    Args:
        path: Venv root directory.
        runner: Command runner.
        base_python: Interpreter used to create the venv.
    """

    def __init__(self, path: Path, runner: CommandRunner, base_python: str = "python3"):
        super().__init__(runner)
        self.path = Path(path)
        self.base_python = base_python

    @property
    def name(self) -> str:
        return "venv"

    def is_available(self) -> bool:
        return self.runner.which(self.base_python) is not None

    # ── Paths ────────────────────────────────────────────────────

    @property
    def bin_dir(self) -> Path:
        return self.path / "bin"

    @property
    def python(self) -> Path:
        """The interpreter whose presence marks the venv as created."""
        return self.bin_dir / "python3"

    @property
    def pip_python(self) -> Path:
        return self.bin_dir / "python"

    def binary(self, name: str) -> Path:
        return self.bin_dir / name

    # ── Probes ───────────────────────────────────────────────────

    def has_interpreter(self) -> bool:
        return self.python.is_file() and os.access(self.python, os.X_OK)

    def has_binary(self, name: str) -> bool:
        target = self.binary(name)
        return target.is_file() and os.access(target, os.X_OK)

    def smoke_check(self) -> CommandResult:
        """Run the interpreter against ``SMOKE_SCRIPT``."""
        return self.run([str(self.python), "-"], input=SMOKE_SCRIPT, timeout=30)

    def has_pip(self) -> bool:
        return self.run([str(self.pip_python), "-m", "pip", "--version"], timeout=60).ok

    def pip_show(self, package: str) -> dict[str, str] | None:
        """Metadata of an installed distribution, or None if not installed."""
        result = self.run(
            [str(self.pip_python), "-m", "pip", "show", _PIP_QUIET, package], timeout=60,
        )
        if not result.ok:
            return None
        info: dict[str, str] = {}
        for line in result.stdout.splitlines():
            key, sep, value = line.partition(": ")
            if sep:
                info[key.strip()] = value.strip()
        return info or None

    def installed_version(self, package: str) -> str | None:
        info = self.pip_show(package)
        return info.get("Version") if info else None

    def pip_check(self) -> CommandResult:
        return self.run([str(self.pip_python), "-m", "pip", "check", _PIP_QUIET], timeout=120)

    # ── Mutations ────────────────────────────────────────────────

    def create(self) -> CommandResult:
        logger.info("Creating virtualenv at %s", self.path)
        return self.run([self.base_python, "-m", "venv", str(self.path)], timeout=300)

    def remove(self) -> None:
        """Delete the venv directory completely."""
        if self.path.is_symlink() or self.path.is_file():
            self.path.unlink()
        elif self.path.exists():
            shutil.rmtree(self.path)

    def ensure_pip(self) -> CommandResult:
        return self.run([str(self.pip_python), "-m", "ensurepip", "--upgrade"], timeout=300)

    def upgrade_bootstrap(self) -> CommandResult:
        """Upgrade pip, setuptools and wheel inside the venv."""
        return self.pip_install(list(BOOTSTRAP_PACKAGES), upgrade=True)

    def pip_install(
        self,
        packages: list[str],
        *,
        upgrade: bool = False,
        pre: bool = False,
        force_reinstall: bool = False,
    ) -> CommandResult:
        argv = [str(self.pip_python), "-m", "pip", "install", _PIP_QUIET]
        if upgrade:
            argv.append("--upgrade")
        if pre:
            argv.append("--pre")
        if force_reinstall:
            argv.append("--force-reinstall")
        return self.run([*argv, *packages], timeout=1800)

