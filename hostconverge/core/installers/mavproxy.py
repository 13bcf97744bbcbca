"""
MAVProxy — ground-station software in a dedicated venv.

Debian-family only. Installs the system libraries MAVProxy's wheels
link against, installs (and upgrades) MAVProxy into its own venv, and
exposes the launcher on PATH through a symlink.
"""

from __future__ import annotations

from hostconverge.core.context import Host
from hostconverge.core.errors import PreconditionFailed
from hostconverge.core.installers.base import Installer
from hostconverge.core.models.settings import MavproxySettings
from hostconverge.core.models.step import Plan
from hostconverge.core.steps.accounts import group_step
from hostconverge.core.steps.checks import command_check_step
from hostconverge.core.steps.files import symlink_step
from hostconverge.core.steps.packages import (
    optional_packages_step,
    packages_step,
    refresh_index_step,
)
from hostconverge.core.steps.venv import bootstrap_step, pip_package_step, venv_step

SYSTEM_PACKAGES = [
    "python3",
    "python3-dev",
    "python3-venv",
    "python3-pip",
    "libatlas-base-dev",
    "libglib2.0-0",
    "libgl1",
]

OPTIONAL_PACKAGES = ["python3-lxml", "python3-opencv"]

GUI_PACKAGES = ["python3-matplotlib", "python3-pygame", "python3-wxgtk4.0"]

# mavproxy first: it decides whether the install is present
PIP_PACKAGES = ["mavproxy", "future", "pymavlink"]

LAUNCHER = "mavproxy.py"


def check_preconditions(host: Host, settings: MavproxySettings) -> None:
    pm = host.require_packages()
    if pm.name != "apt":
        raise PreconditionFailed(
            f"MAVProxy installer supports Debian-family systems (apt); found {pm.name}"
        )


def build_plan(host: Host, settings: MavproxySettings) -> Plan:
    pm = host.require_packages()
    venv = host.venv(settings.venv_dir)
    link = settings.link_dir / LAUNCHER
    attempts = settings.network_attempts

    steps = [
        refresh_index_step(pm, attempts=attempts),
        packages_step(pm, "system-packages", SYSTEM_PACKAGES, depends_on=("refresh-package-index",)),
        optional_packages_step(
            pm, "optional-packages", OPTIONAL_PACKAGES, depends_on=("refresh-package-index",),
        ),
    ]
    if settings.install_gui:
        steps.append(
            optional_packages_step(
                pm, "gui-packages", GUI_PACKAGES, depends_on=("refresh-package-index",),
            )
        )
    steps += [
        venv_step(venv, depends_on=("system-packages",)),
        bootstrap_step(venv, attempts=attempts, depends_on=("venv",)),
        pip_package_step(
            venv,
            "mavproxy",
            PIP_PACKAGES,
            binaries=(LAUNCHER,),
            upgrade=True,
            attempts=attempts,
            depends_on=("venv-bootstrap",),
        ),
        symlink_step(link, venv.binary(LAUNCHER), name="launcher-link", depends_on=("mavproxy",)),
        command_check_step(
            host.runner,
            [str(link), "--version"],
            name="validate-mavproxy",
            depends_on=("launcher-link",),
        ),
        group_step(host.accounts, settings.serial_group, name="serial-group"),
    ]

    return Plan(
        name="mavproxy",
        steps=steps,
        description="MAVProxy in a dedicated virtualenv",
        notes=[
            "Add non-root users to the serial group:",
            f"  sudo usermod -aG {settings.serial_group} <username>",
            f"Run MAVProxy: {link}",
        ],
    )


INSTALLER = Installer(
    name="mavproxy",
    description="MAVProxy ground station in a venv with a launcher on PATH",
    settings_model=MavproxySettings,
    build_plan=build_plan,
    check_preconditions=check_preconditions,
)
