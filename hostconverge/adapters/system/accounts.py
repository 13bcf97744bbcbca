"""
Accounts adapter — users and groups.

Lookups go through the ``pwd``/``grp`` databases (read-only, no
subprocess); mutations shell out to the standard account tools.
"""

from __future__ import annotations

import grp
import logging
import pwd

from hostconverge.adapters.base import Adapter
from hostconverge.adapters.shell.command import CommandResult

logger = logging.getLogger(__name__)

NOLOGIN_SHELL = "/usr/sbin/nologin"


class AccountManager(Adapter):
    """User and group management."""

    @property
    def name(self) -> str:
        return "accounts"

    def is_available(self) -> bool:
        return self.runner.which("useradd") is not None

    # ── Lookups ──────────────────────────────────────────────────

    def group_exists(self, group: str) -> bool:
        try:
            grp.getgrnam(group)
        except KeyError:
            return False
        return True

    def user_exists(self, user: str) -> bool:
        try:
            pwd.getpwnam(user)
        except KeyError:
            return False
        return True

    def home_of(self, user: str) -> str | None:
        try:
            return pwd.getpwnam(user).pw_dir or None
        except KeyError:
            return None

    def primary_group_of(self, user: str) -> str | None:
        try:
            gid = pwd.getpwnam(user).pw_gid
            return grp.getgrgid(gid).gr_name
        except KeyError:
            return None

    # ── Mutations ────────────────────────────────────────────────

    def create_group(self, group: str, system: bool = False) -> CommandResult:
        argv = ["groupadd"]
        if system:
            argv.append("--system")
        return self.run([*argv, group], timeout=30)

    def create_system_user(self, user: str, group: str, home: str) -> CommandResult:
        """Create a no-login service account without a home directory."""
        return self.run(
            [
                "useradd", "--system", "--no-create-home",
                "--home-dir", home,
                "--shell", NOLOGIN_SHELL,
                "-g", group,
                user,
            ],
            timeout=30,
        )

    def create_login_user(self, user: str) -> CommandResult:
        """Create a regular account with a home directory and no password."""
        return self.run(
            ["adduser", "--gecos", "", "--disabled-password", user],
            timeout=60,
        )

    def run_as(self, user: str, shell_command: str) -> CommandResult:
        """Run a ``/bin/sh`` snippet as ``user`` (used for access checks)."""
        return self.run(["su", "-s", "/bin/sh", "-", user, "-c", shell_command], timeout=30)
