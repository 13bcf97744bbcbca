"""
Host context — the adapters a plan is built against.

A Host is assembled ONCE per invocation and handed to the installer
recipes. Steps capture the adapters they need from it; nothing reads
the environment or re-detects tools mid-run.

    - CLI:    use_cases.install → Host.detect(CommandRunner())
    - Tests:  Host.detect(MockCommandRunner(...)) or Host(...) directly
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from pathlib import Path

from hostconverge.adapters.languages.python import VirtualEnv
from hostconverge.adapters.shell.command import CommandRunner
from hostconverge.adapters.system.accounts import AccountManager
from hostconverge.adapters.system.network import NetworkProbe
from hostconverge.adapters.system.packages import PackageManager, detect_package_manager
from hostconverge.adapters.system.systemd import SystemdManager
from hostconverge.core.errors import PreconditionFailed

logger = logging.getLogger(__name__)


def _read_os_release(path: Path = Path("/etc/os-release")) -> dict[str, str]:
    info: dict[str, str] = {}
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            key, sep, value = line.partition("=")
            if sep:
                info[key.strip()] = value.strip().strip('"')
    except OSError:
        pass
    return info


@dataclass
class Host:
    """Adapters and facts about the machine being provisioned."""

    runner: CommandRunner
    packages: PackageManager | None
    services: SystemdManager
    accounts: AccountManager
    network: NetworkProbe
    arch: str = field(default_factory=platform.machine)
    os_id: str = "unknown"

    @classmethod
    def detect(cls, runner: CommandRunner) -> Host:
        """Build a Host from what is installed on this machine."""
        packages = detect_package_manager(runner)
        os_id = _read_os_release().get("ID", "unknown")
        host = cls(
            runner=runner,
            packages=packages,
            services=SystemdManager(runner),
            accounts=AccountManager(runner),
            network=NetworkProbe(runner),
            os_id=os_id,
        )
        logger.info(
            "Detected: pkgmgr=%s os_id=%s arch=%s",
            packages.name if packages else "none", os_id, host.arch,
        )
        return host

    def venv(self, path: Path) -> VirtualEnv:
        return VirtualEnv(path, self.runner)

    def require_packages(self) -> PackageManager:
        if self.packages is None:
            raise PreconditionFailed(
                "Unsupported package manager. Use Debian/Ubuntu/Fedora/RHEL/openSUSE/Arch."
            )
        return self.packages
