"""
Check steps — reachability, command validation, access checks.

Checks change nothing. Their probe runs the check; a failing probe
leads to an "apply" that re-runs it once and raises the matching
error kind, so the run halts (or warns, for optional checks) with a
message the operator can act on.
"""

from __future__ import annotations

import logging
import shlex

from hostconverge.adapters.shell.command import CommandRunner
from hostconverge.adapters.system.accounts import AccountManager
from hostconverge.adapters.system.network import NetworkProbe
from hostconverge.core.errors import HealthCheckFailed, PreconditionFailed
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import SatisfiedState
from hostconverge.core.models.step import Step
from hostconverge.core.reliability.retry import retry_call
from hostconverge.core.steps.base import state_of

logger = logging.getLogger(__name__)


def reachability_step(
    network: NetworkProbe,
    urls: list[str],
    attempts: int = 3,
    timeout: int = 10,
    name: str = "network-reachability",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Every URL answers before anything is downloaded."""
    checked: dict[str, dict] = {}

    def check(url: str) -> dict:
        result = retry_call(
            lambda: network.check_url(url, timeout=timeout),
            lambda r: r["reachable"],
            attempts=attempts,
            base_delay=2.0,
            label=f"reach {url}",
        )
        checked[url] = result
        return result

    def probe() -> SatisfiedState:
        return state_of(all(check(url)["reachable"] for url in urls))

    def apply() -> Receipt:
        down = [u for u in urls if not checked.get(u, {}).get("reachable")]
        down = [u for u in down if not network.check_url(u, timeout=timeout)["reachable"]]
        if down:
            details = "; ".join(f"{u} ({checked.get(u, {}).get('error', 'unreachable')})" for u in down)
            raise PreconditionFailed(f"Network check failed: {details}", step=name)
        return Receipt.success(name, "all endpoints reachable")

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        verify=False,
        description=f"Reach {', '.join(urls)}",
    )


def command_check_step(
    runner: CommandRunner,
    argv: list[str],
    name: str,
    hint: str = "",
    optional: bool = False,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """``argv`` exits zero; otherwise a health-check failure."""

    def apply() -> Receipt:
        result = runner.run(argv, timeout=120)
        if result.ok:
            return Receipt.success(name, result.stdout.strip()[:200])
        message = f"{result.command} failed: {result.error_text()}"
        if hint:
            message += f". {hint}"
        raise HealthCheckFailed(message, step=name)

    return Step(
        name=name,
        probe=lambda: state_of(runner.run(argv, timeout=120).ok),
        apply=apply,
        depends_on=depends_on,
        optional=optional,
        verify=False,
        description=f"Check: {' '.join(argv)}",
    )


def access_check_step(
    accounts: AccountManager,
    user: str,
    paths: list[str],
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """``user`` can execute every entry of ``paths`` (e.g. binaries in a venv)."""
    name = name or f"access:{user}"
    test = " && ".join(f"test -x {shlex.quote(p)}" for p in paths)
    shown = ", ".join(paths)

    def apply() -> Receipt:
        if accounts.run_as(user, test).ok:
            return Receipt.success(name, f"{user} can execute {shown}")
        raise HealthCheckFailed(
            f"User '{user}' cannot execute {shown}; check ownership and permissions",
            step=name,
        )

    return Step(
        name=name,
        probe=lambda: state_of(accounts.run_as(user, test).ok),
        apply=apply,
        depends_on=depends_on,
        verify=False,
        description=f"{user} can execute {shown}",
    )
