"""
Account steps — groups, service users, login users.
"""

from __future__ import annotations

from hostconverge.adapters.system.accounts import AccountManager
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import SatisfiedState
from hostconverge.core.models.step import Step
from hostconverge.core.steps.base import require_ok, state_of


def group_step(
    accounts: AccountManager,
    group: str,
    system: bool = False,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    name = name or f"group:{group}"

    def apply() -> Receipt:
        require_ok(accounts.create_group(group, system=system), name)
        return Receipt.success(name, f"Created group {group}")

    return Step(
        name=name,
        probe=lambda: state_of(accounts.group_exists(group)),
        apply=apply,
        depends_on=depends_on,
        description=f"Group {group} exists",
    )


def system_user_step(
    accounts: AccountManager,
    user: str,
    group: str,
    home: str,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """No-login service account whose primary group is ``group``."""
    name = name or f"user:{user}"

    def apply() -> Receipt:
        require_ok(accounts.create_system_user(user, group, home), name)
        return Receipt.success(name, f"Created system user {user}")

    return Step(
        name=name,
        probe=lambda: state_of(accounts.user_exists(user)),
        apply=apply,
        depends_on=depends_on,
        description=f"System user {user} exists",
    )


def login_user_step(
    accounts: AccountManager,
    user: str,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Regular account with a home directory."""
    name = name or f"user:{user}"

    def probe() -> SatisfiedState:
        if not accounts.user_exists(user):
            return SatisfiedState.MISSING
        return state_of(accounts.home_of(user) is not None)

    def apply() -> Receipt:
        if accounts.user_exists(user):
            return Receipt.failure(name, f"User {user} exists but has no home directory")
        require_ok(accounts.create_login_user(user), name)
        return Receipt.success(name, f"Created user {user}")

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        description=f"User {user} exists",
    )
