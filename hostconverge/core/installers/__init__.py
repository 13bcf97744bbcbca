"""
Installer registry — every recipe the CLI can run.

    from hostconverge.core.installers import INSTALLERS, get_installer
"""

from hostconverge.core.installers import mavproxy, motioneye, samba
from hostconverge.core.installers.base import Installer

INSTALLERS: dict[str, Installer] = {
    inst.name: inst
    for inst in (mavproxy.INSTALLER, motioneye.INSTALLER, samba.INSTALLER)
}


def get_installer(name: str) -> Installer | None:
    """Look up an installer by name."""
    return INSTALLERS.get(name)


__all__ = ["INSTALLERS", "Installer", "get_installer"]
