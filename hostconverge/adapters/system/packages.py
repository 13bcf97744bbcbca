"""
Package managers — one adapter per distro tool, one capability table.

Each entry provides the primitive operations the step layer needs:

    available(pkg)         is the name resolvable to an installable candidate?
    installed(pkg)         is it installed right now?
    refresh_index()        update the package index
    install(pkgs)          install, failing on any error
    install_optional(pkgs) install whatever is available, degrade to warnings

Selection is a table lookup keyed by identifier (``PACKAGE_MANAGERS``);
``detect_package_manager`` picks the first identifier whose binary is on
PATH, in preference order.
"""

from __future__ import annotations

import logging
from abc import abstractmethod

from pydantic import BaseModel, Field

from hostconverge.adapters.base import Adapter
from hostconverge.adapters.shell.command import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

_NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class OptionalInstallOutcome(BaseModel):
    """What happened to a set of optional packages."""

    requested: list[str] = Field(default_factory=list)
    installed: list[str] = Field(default_factory=list)
    unavailable: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PackageManager(Adapter):
    """Base class for distro package managers."""

    binary: str = ""

    def is_available(self) -> bool:
        return self.runner.which(self.binary) is not None

    @property
    def name(self) -> str:
        return self.binary

    @abstractmethod
    def available(self, pkg: str) -> bool:
        """Whether ``pkg`` resolves to an installable candidate."""

    @abstractmethod
    def installed(self, pkg: str) -> bool:
        """Whether ``pkg`` is currently installed."""

    @abstractmethod
    def refresh_index(self) -> CommandResult:
        """Refresh the package index."""

    @abstractmethod
    def install(self, pkgs: list[str]) -> CommandResult:
        """Install every package in ``pkgs`` non-interactively."""

    def missing(self, pkgs: list[str]) -> list[str]:
        return [p for p in pkgs if not self.installed(p)]

    def install_optional(self, pkgs: list[str]) -> OptionalInstallOutcome:
        """Install the available subset of ``pkgs``; never fails.

        Packages with no candidate are reported as unavailable. If none
        are available, nothing is run. A failing install of the
        available subset becomes a warning.
        """
        outcome = OptionalInstallOutcome(requested=list(pkgs))
        wanted: list[str] = []
        for pkg in pkgs:
            if self.available(pkg):
                wanted.append(pkg)
            else:
                outcome.unavailable.append(pkg)
                outcome.warnings.append(f"Optional package not available: {pkg}")

        if not wanted:
            logger.warning("Skipping optional packages (not available): %s", " ".join(pkgs))
            return outcome

        result = self.install(wanted)
        if result.ok:
            outcome.installed = wanted
        else:
            outcome.warnings.append(f"Optional install failed: {result.error_text()}")
            logger.warning("Optional install failed: %s", " ".join(wanted))
        return outcome


class AptPackageManager(PackageManager):
    """Debian/Ubuntu/Raspberry Pi OS."""

    binary = "apt-get"

    @property
    def name(self) -> str:
        return "apt"

    def available(self, pkg: str) -> bool:
        result = self.run(["apt-cache", "policy", pkg], timeout=30)
        if not result.ok:
            return False
        for line in result.stdout.splitlines():
            line = line.strip()
            if line.startswith("Candidate:"):
                candidate = line.split(":", 1)[1].strip()
                return bool(candidate) and candidate != "(none)"
        return False

    def installed(self, pkg: str) -> bool:
        result = self.run(["dpkg-query", "-W", "-f=${Status}", pkg], timeout=10)
        return "install ok installed" in result.stdout

    def refresh_index(self) -> CommandResult:
        return self.run(["apt-get", "update", "-y"], env=_NONINTERACTIVE)

    def install(self, pkgs: list[str]) -> CommandResult:
        return self.run(
            ["apt-get", "install", "-y", "--no-install-recommends", *pkgs],
            env=_NONINTERACTIVE,
        )


class DnfPackageManager(PackageManager):
    """Fedora/RHEL 8+."""

    binary = "dnf"

    def available(self, pkg: str) -> bool:
        return self.run([self.binary, "-q", "list", "--available", pkg], timeout=60).ok or self.installed(pkg)

    def installed(self, pkg: str) -> bool:
        return self.run(["rpm", "-q", pkg], timeout=10).ok

    def refresh_index(self) -> CommandResult:
        return self.run([self.binary, "-q", "makecache"])

    def install(self, pkgs: list[str]) -> CommandResult:
        return self.run([self.binary, "-y", "install", *pkgs])


class YumPackageManager(DnfPackageManager):
    """RHEL/CentOS 7."""

    binary = "yum"

    def available(self, pkg: str) -> bool:
        return self.run([self.binary, "-q", "list", "available", pkg], timeout=60).ok or self.installed(pkg)


class ZypperPackageManager(PackageManager):
    """openSUSE."""

    binary = "zypper"

    def available(self, pkg: str) -> bool:
        return self.run(["zypper", "-q", "info", pkg], timeout=60).ok

    def installed(self, pkg: str) -> bool:
        return self.run(["rpm", "-q", pkg], timeout=10).ok

    def refresh_index(self) -> CommandResult:
        return self.run(["zypper", "--non-interactive", "refresh"])

    def install(self, pkgs: list[str]) -> CommandResult:
        return self.run(["zypper", "--non-interactive", "install", "--no-recommends", *pkgs])


class PacmanPackageManager(PackageManager):
    """Arch Linux."""

    binary = "pacman"

    def available(self, pkg: str) -> bool:
        return self.run(["pacman", "-Si", pkg], timeout=30).ok

    def installed(self, pkg: str) -> bool:
        return self.run(["pacman", "-Q", pkg], timeout=10).ok

    def refresh_index(self) -> CommandResult:
        return self.run(["pacman", "-Sy", "--noconfirm"])

    def install(self, pkgs: list[str]) -> CommandResult:
        return self.run(["pacman", "-S", "--noconfirm", "--needed", *pkgs])


# Preference order matters: dnf hosts usually ship a yum shim.
PACKAGE_MANAGERS: dict[str, type[PackageManager]] = {
    "apt": AptPackageManager,
    "dnf": DnfPackageManager,
    "yum": YumPackageManager,
    "zypper": ZypperPackageManager,
    "pacman": PacmanPackageManager,
}


def detect_package_manager(runner: CommandRunner) -> PackageManager | None:
    """Return the first package manager whose binary is on PATH."""
    for name, cls in PACKAGE_MANAGERS.items():
        pm = cls(runner)
        if pm.is_available():
            logger.debug("Detected package manager: %s", name)
            return pm
    return None
