"""
Package steps — index refresh, mandatory installs, optional installs.

Mandatory packages must all end up installed or the run halts.
Optional packages are filtered to what the package manager can resolve;
the rest become warnings and the run continues.
"""

from __future__ import annotations

import logging

from hostconverge.adapters.system.packages import PackageManager
from hostconverge.core.errors import PackageUnavailable
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import RepairPolicy, SatisfiedState
from hostconverge.core.models.step import Step
from hostconverge.core.steps.base import require_ok, run_with_retries, state_of

logger = logging.getLogger(__name__)


def refresh_index_step(
    pm: PackageManager,
    name: str = "refresh-package-index",
    attempts: int = 3,
) -> Step:
    """Refresh the package index on every run."""

    def apply() -> Receipt:
        run_with_retries(pm.refresh_index, name, attempts=attempts)
        return Receipt.success(name, f"{pm.name} index refreshed")

    return Step(
        name=name,
        probe=lambda: SatisfiedState.SATISFIED,
        apply=apply,
        on_mismatch=RepairPolicy.ALWAYS_REAPPLY,
        verify=False,
        description="Update the package index",
    )


def packages_step(
    pm: PackageManager,
    name: str,
    packages: list[str],
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Install mandatory packages, halting before any install if one is unavailable."""

    def probe() -> SatisfiedState:
        return state_of(not pm.missing(packages))

    def apply() -> Receipt:
        missing = pm.missing(packages)
        if not missing:
            return Receipt.skip(name, "all packages already installed")
        unavailable = [p for p in missing if not pm.available(p)]
        if unavailable:
            raise PackageUnavailable(unavailable, step=name)
        require_ok(pm.install(missing), name)
        return Receipt.success(name, f"Installed: {' '.join(missing)}")

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        description=f"Install {', '.join(packages)}",
    )


def optional_packages_step(
    pm: PackageManager,
    name: str,
    packages: list[str],
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Install whatever subset of ``packages`` is available.

    Satisfied when every *available* package is installed. Packages
    with no candidate never block convergence; they are reported as
    warnings on each run that tries to install them.
    """

    def pending() -> list[str]:
        return [p for p in packages if not pm.installed(p)]

    def probe() -> SatisfiedState:
        return state_of(not any(pm.available(p) for p in pending()))

    def apply() -> Receipt:
        outcome = pm.install_optional(pending())
        if not outcome.installed:
            return Receipt.skip(
                name,
                "no optional packages installed",
                warnings=outcome.warnings,
            )
        return Receipt.success(
            name,
            f"Installed: {' '.join(outcome.installed)}",
            warnings=outcome.warnings,
            metadata={"unavailable": outcome.unavailable},
        )

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        optional=True,
        verify=False,
        description=f"Install if available: {', '.join(packages)}",
    )
