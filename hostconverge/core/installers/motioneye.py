"""
motionEye — camera web UI as a hardened systemd service.

Platform-aware: the core package set depends on the package manager,
and ARM/RISC-V hosts get build dependencies for wheels that have no
prebuilt binary. motionEye runs from a root-owned venv that the
service group can read but not modify.

Re-runs upgrade motionEye in place (``upgrade``), optionally from
pre-releases (``pre``), and force a reinstall when requested or when
the ``meyectl`` entry point has gone missing.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path

from hostconverge.core.context import Host
from hostconverge.core.errors import PreconditionFailed
from hostconverge.core.installers.base import Installer
from hostconverge.core.models.settings import MotioneyeSettings
from hostconverge.core.models.step import Plan
from hostconverge.core.steps.accounts import group_step, system_user_step
from hostconverge.core.steps.checks import access_check_step, reachability_step
from hostconverge.core.steps.files import (
    directory_step,
    file_step,
    line_normalize_step,
    path_mode_step,
    tree_owner_step,
    tree_permissions_step,
)
from hostconverge.core.steps.packages import (
    optional_packages_step,
    packages_step,
    refresh_index_step,
)
from hostconverge.core.steps.services import service_step, unit_file_step
from hostconverge.core.steps.venv import (
    bootstrap_step,
    pip_check_step,
    pip_package_step,
    venv_step,
)

logger = logging.getLogger(__name__)

SERVICE = "motioneye"

REQUIRED_URLS = [
    "https://github.com/motioneye-project/motioneye",
    "https://pypi.org/simple/motioneye/",
]

# pkgmgr → (core packages, build packages, arches that need the build packages)
PACKAGE_TABLE: dict[str, tuple[list[str], list[str], frozenset[str]]] = {
    "apt": (
        ["ca-certificates", "curl", "python3", "python3-venv"],
        ["python3-dev", "gcc", "libjpeg62-turbo-dev", "libcurl4-openssl-dev", "libssl-dev"],
        frozenset({"armv6l", "armv7l", "riscv64"}),
    ),
    "dnf": (
        ["ca-certificates", "curl", "python3", "python3-pip", "python3-virtualenv", "gcc"],
        ["python3-devel", "libjpeg-turbo-devel", "libcurl-devel", "openssl-devel"],
        frozenset({"armv6l", "armv7l", "armhf", "riscv64"}),
    ),
    "yum": (
        ["ca-certificates", "curl", "python3", "python3-pip", "python3-virtualenv", "gcc"],
        ["python3-devel", "libjpeg-turbo-devel", "libcurl-devel", "openssl-devel"],
        frozenset({"armv6l", "armv7l", "armhf", "riscv64"}),
    ),
    "zypper": (
        ["ca-certificates", "curl", "python3", "python3-pip", "python3-virtualenv", "gcc"],
        ["python3-devel", "libjpeg62-devel", "libcurl-devel", "libopenssl-devel"],
        frozenset({"armv6l", "armv7l", "armhf", "riscv64"}),
    ),
    "pacman": (
        ["ca-certificates", "curl", "python", "python-pip"],
        ["base-devel", "libjpeg-turbo", "curl", "openssl"],
        frozenset({"armv6l", "armv7l"}),
    ),
}

RUNTIME_PACKAGES = ["motion", "ffmpeg", "v4l-utils"]

LOGROTATE_SAMPLE_DIRS = [
    Path("/usr/share/motioneye/extra"),
    Path("/usr/local/share/motioneye/extra"),
]

LOG_PATH_PATTERN = r"^[ \t]*log_path[ \t]+/var/log/?[ \t]*$"


# ── Rendered files ──────────────────────────────────────────────


def render_unit(settings: MotioneyeSettings) -> str:
    s = settings
    return f"""\
[Unit]
Description=motionEye Server
Documentation=https://github.com/motioneye-project/motioneye
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
User={s.user}
Group={s.group}
WorkingDirectory={s.media_dir}
ExecStart={s.venv_dir}/bin/meyectl startserver -c {s.config_file}
Restart=on-failure
RestartSec=5s

StateDirectory=motioneye
RuntimeDirectory=motioneye
LogsDirectory=motioneye

AmbientCapabilities=
CapabilityBoundingSet=
NoNewPrivileges=yes
PrivateTmp=yes
ProtectHome=yes
ProtectSystem=full
ReadWritePaths={s.media_dir} {s.config_dir} {s.log_dir}

[Install]
WantedBy=multi-user.target
"""


def render_default_config(settings: MotioneyeSettings) -> str:
    s = settings
    return (
        f"conf_path {s.config_dir}\n"
        "run_path /run/motioneye\n"
        f"media_path {s.media_dir}\n"
        f"log_path {s.log_dir}\n"
        f"# Web UI: http://<host>:{s.port}/  (admin / empty password until changed)\n"
    )


def render_builtin_logrotate(settings: MotioneyeSettings) -> str:
    s = settings
    return f"""\
{s.log_dir}/*.log {{
  daily
  missingok
  rotate 7
  compress
  delaycompress
  notifempty
  copytruncate
  create 0640 {s.user} {s.group}
}}
"""


def find_logrotate_sample(venv_dir: Path) -> Path | None:
    """The logrotate sample shipped with motionEye, if any."""
    candidates = sorted(venv_dir.glob("lib/python*/site-packages/motioneye/extra/motioneye.logrotate"))
    candidates += [d / "motioneye.logrotate" for d in LOGROTATE_SAMPLE_DIRS]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def render_logrotate(settings: MotioneyeSettings) -> str:
    sample = find_logrotate_sample(settings.venv_dir)
    if sample is None:
        return render_builtin_logrotate(settings)
    logger.debug("Using logrotate sample %s", sample)
    text = sample.read_text(encoding="utf-8")
    return text.replace("/var/log/motioneye", str(settings.log_dir))


# ── Plan ────────────────────────────────────────────────────────


def check_preconditions(host: Host, settings: MotioneyeSettings) -> None:
    pm = host.require_packages()
    if pm.name not in PACKAGE_TABLE:
        raise PreconditionFailed(f"No motionEye package set for {pm.name}")
    if not host.services.is_available():
        raise PreconditionFailed("systemd not found.")
    if not host.services.is_running_as_init():
        logger.warning("PID 1 is not systemd. Proceeding may fail.")


def build_plan(host: Host, settings: MotioneyeSettings) -> Plan:
    s = settings
    pm = host.require_packages()
    venv = host.venv(s.venv_dir)
    core, build, build_arches = PACKAGE_TABLE[pm.name]
    attempts = s.network_attempts

    steps = [
        reachability_step(host.network, REQUIRED_URLS, attempts=attempts),
        refresh_index_step(pm, attempts=attempts),
        packages_step(pm, "core-packages", core, depends_on=("refresh-package-index",)),
    ]
    if host.arch in build_arches:
        steps.append(
            optional_packages_step(
                pm, "build-packages", build, depends_on=("refresh-package-index",),
            )
        )
    steps += [
        optional_packages_step(
            pm, "runtime-packages", RUNTIME_PACKAGES, depends_on=("refresh-package-index",),
        ),
        group_step(host.accounts, s.group, system=True, name="service-group"),
        system_user_step(
            host.accounts, s.user, s.group, str(s.media_dir),
            name="service-user", depends_on=("service-group",),
        ),
        directory_step(s.media_dir, 0o750, s.user, s.group, name="media-dir", depends_on=("service-user",)),
        directory_step(s.log_dir, 0o750, s.user, s.group, name="log-dir", depends_on=("service-user",)),
        directory_step(s.config_dir, 0o750, s.user, s.group, name="config-dir", depends_on=("service-user",)),
        venv_step(venv, depends_on=("core-packages",)),
        tree_permissions_step(
            s.venv_dir, s.venv_owner, s.group, name="venv-permissions", depends_on=("venv", "service-group"),
        ),
        bootstrap_step(venv, attempts=attempts, depends_on=("venv",)),
        pip_package_step(
            venv,
            "motioneye",
            ["motioneye"],
            binaries=("meyectl",),
            upgrade=s.upgrade,
            pre=s.pre,
            reinstall=s.reinstall,
            attempts=attempts,
            depends_on=("venv-bootstrap", "network-reachability"),
        ),
        tree_permissions_step(
            s.venv_dir, s.venv_owner, s.group, name="venv-permissions-installed", depends_on=("motioneye",),
        ),
        access_check_step(
            host.accounts,
            s.user,
            [str(venv.pip_python), str(venv.binary("meyectl"))],
            name="service-user-access",
            depends_on=("venv-permissions-installed",),
        ),
        pip_check_step(
            venv,
            hint="reinstall with ME_REINSTALL=1 if issues persist",
            depends_on=("motioneye",),
        ),
        file_step(
            s.config_file,
            lambda: render_default_config(s),
            mode=0o640,
            only_if_missing=True,
            name="default-config",
            depends_on=("config-dir",),
        ),
        unit_file_step(host.services, s.unit_path, lambda: render_unit(s), name="unit-file"),
        file_step(
            s.logrotate_path,
            lambda: render_logrotate(s),
            mode=0o644,
            name="logrotate",
            depends_on=("motioneye",),
        ),
        line_normalize_step(
            s.config_file,
            LOG_PATH_PATTERN,
            f"log_path {s.log_dir}",
            name="config-log-path",
            depends_on=("default-config",),
        ),
        tree_owner_step(s.config_dir, s.user, s.group, name="config-ownership", depends_on=("default-config",)),
        path_mode_step(s.config_file, 0o640, s.user, s.group, name="config-mode", depends_on=("default-config",)),
        service_step(
            host.services,
            [SERVICE],
            watch=[s.config_file, s.unit_path],
            wait_timeout=s.service_wait_s,
            name="service",
            depends_on=("unit-file", "service-user-access"),
        ),
    ]

    hostname = socket.getfqdn() or "localhost"
    return Plan(
        name="motioneye",
        steps=steps,
        description="motionEye server in a venv under systemd",
        notes=[
            "motionEye is running.",
            f"UI (hostname): http://{hostname}:{s.port}/",
            "Log in as admin with an empty password, then set one.",
        ],
    )


INSTALLER = Installer(
    name="motioneye",
    description="motionEye camera server as a hardened systemd service",
    settings_model=MotioneyeSettings,
    build_plan=build_plan,
    check_preconditions=check_preconditions,
)
