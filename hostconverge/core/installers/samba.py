"""
Samba — a private home-directory share for one user.

The target user is the positional argument or the sudo invoker. The
Samba password comes from ``SMB_PASSWORD`` (never prompted for); it is
only needed the first time the account is registered.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostconverge.adapters.shell import filesystem as fs
from hostconverge.adapters.shell.command import CommandRunner
from hostconverge.adapters.system.accounts import AccountManager
from hostconverge.core.context import Host
from hostconverge.core.errors import ApplyFailed, PreconditionFailed
from hostconverge.core.installers.base import Installer
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.settings import SambaSettings
from hostconverge.core.models.state import SatisfiedState
from hostconverge.core.models.step import Plan, Step
from hostconverge.core.steps.accounts import login_user_step
from hostconverge.core.steps.base import require_ok, state_of
from hostconverge.core.steps.checks import command_check_step
from hostconverge.core.steps.files import managed_block_step
from hostconverge.core.steps.packages import packages_step, refresh_index_step
from hostconverge.core.steps.services import service_step

logger = logging.getLogger(__name__)

PACKAGES = ["samba", "smbclient", "cifs-utils"]
SERVICES = ["smbd", "nmbd"]


def render_homes_block(user: str) -> str:
    return (
        "[homes]\n"
        "   comment = Home Directories\n"
        "   browseable = yes\n"
        "   writable = yes\n"
        f"   valid users = {user}\n"
        "   read only = no\n"
        "   create mask = 0700\n"
        "   directory mask = 0700\n"
    )


def _account_flags(runner: CommandRunner, user: str) -> str | None:
    """Samba account flags (e.g. ``[U          ]``), or None without an account."""
    result = runner.run(["pdbedit", "-L", "-v", "-u", user], timeout=30)
    if not result.ok:
        return None
    for line in result.stdout.splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "Account Flags":
            return value.strip()
    return ""


def samba_account_step(
    runner: CommandRunner,
    user: str,
    password: str | None,
    name: str = "samba-account",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """``user`` registered in the Samba password database and enabled."""

    def probe() -> SatisfiedState:
        flags = _account_flags(runner, user)
        if flags is None:
            return SatisfiedState.MISSING
        return state_of("D" not in flags)

    def apply() -> Receipt:
        actions = []
        if _account_flags(runner, user) is None:
            if not password:
                raise PreconditionFailed(
                    f"No Samba account for '{user}' and SMB_PASSWORD is not set", step=name,
                )
            require_ok(
                runner.run(
                    ["smbpasswd", "-s", "-a", user],
                    input=f"{password}\n{password}\n",
                    timeout=30,
                ),
                name,
                "smbpasswd -a",
            )
            actions.append("registered")
        require_ok(runner.run(["smbpasswd", "-e", user], timeout=30), name, "smbpasswd -e")
        actions.append("enabled")
        return Receipt.success(name, f"Samba account {user} {' and '.join(actions)}")

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        description=f"Samba account for {user}",
    )


def home_directory_step(
    accounts: AccountManager,
    user: str,
    mode: int = 0o700,
    name: str = "home-directory",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """The user's home directory owned by the user, closed to everyone else.

    The path is looked up when the step runs; the account may not exist
    when the plan is built.
    """

    def home() -> Path | None:
        found = accounts.home_of(user)
        return Path(found) if found else None

    def probe() -> SatisfiedState:
        path = home()
        if path is None:
            return SatisfiedState.MISSING
        group = accounts.primary_group_of(user) or user
        return state_of(fs.dir_matches(path, mode, user, group))

    def apply() -> Receipt:
        path = home()
        if path is None:
            raise ApplyFailed(f"Could not determine home directory for user '{user}'", step=name)
        group = accounts.primary_group_of(user) or user
        fs.ensure_dir(path, mode, user, group)
        return Receipt.success(name, f"{path} → {user}:{group} {oct(mode)}")

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)


def firewall_step(
    runner: CommandRunner,
    source: str,
    name: str = "firewall",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Allow Samba from ``source`` when ufw is installed; otherwise nothing to do."""
    rule = ["allow", "from", source, "to", "any", "app", "Samba"]
    rule_text = "ufw " + " ".join(rule)

    def probe() -> SatisfiedState:
        if runner.which("ufw") is None:
            return SatisfiedState.SATISFIED
        added = runner.run(["ufw", "show", "added"], timeout=30)
        return state_of(added.ok and rule_text in added.stdout)

    def apply() -> Receipt:
        require_ok(runner.run(["ufw", *rule], timeout=30), name)
        return Receipt.success(name, rule_text)

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        optional=True,
        description=f"ufw allows Samba from {source}",
    )


# ── Plan ────────────────────────────────────────────────────────


def check_preconditions(host: Host, settings: SambaSettings) -> None:
    if not settings.target_user:
        raise PreconditionFailed(
            "Could not determine invoking user. Provide a username as the first argument."
        )
    pm = host.require_packages()
    if pm.name != "apt":
        raise PreconditionFailed(
            f"Samba installer supports Debian-family systems (apt); found {pm.name}"
        )
    if not host.services.is_available():
        raise PreconditionFailed("systemd not found.")


def build_plan(host: Host, settings: SambaSettings) -> Plan:
    s = settings
    if not s.target_user:
        raise PreconditionFailed("No target user configured")
    user = s.target_user
    pm = host.require_packages()
    password = s.password.get_secret_value() if s.password else None

    logger.info("Configuring Samba for user: %s", user)
    steps = [
        refresh_index_step(pm, attempts=s.network_attempts),
        packages_step(pm, "samba-packages", PACKAGES, depends_on=("refresh-package-index",)),
        login_user_step(host.accounts, user, name="login-user"),
        samba_account_step(
            host.runner, user, password, depends_on=("samba-packages", "login-user"),
        ),
        managed_block_step(
            s.smb_conf, "homes", render_homes_block(user),
            name="homes-share", depends_on=("samba-packages",),
        ),
        home_directory_step(host.accounts, user, depends_on=("login-user",)),
        command_check_step(
            host.runner,
            ["testparm", "-s"],
            name="validate-config",
            hint=f"Fix {s.smb_conf} and re-run",
            depends_on=("homes-share",),
        ),
        service_step(
            host.services,
            SERVICES,
            watch=[s.smb_conf],
            wait_timeout=s.service_wait_s,
            name="samba-services",
            depends_on=("validate-config",),
        ),
        firewall_step(host.runner, s.firewall_source, depends_on=("samba-services",)),
    ]

    return Plan(
        name="samba",
        steps=steps,
        description=f"Samba home share for {user}",
        notes=[
            f"Samba home directory share for user '{user}' configured.",
            f"Access it as \\\\SERVER_IP\\{user} from other machines.",
        ],
    )


INSTALLER = Installer(
    name="samba",
    description="Samba home-directory share for one user",
    settings_model=SambaSettings,
    build_plan=build_plan,
    check_preconditions=check_preconditions,
    takes_target_user=True,
)
