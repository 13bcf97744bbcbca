"""
Virtual-environment steps — create, bootstrap, install packages.

A venv whose interpreter exists but cannot resolve its own prefix and
site-packages is *broken*: the runner removes the whole directory and
recreates it, never patching a half-working environment in place.
"""

from __future__ import annotations

import logging

from hostconverge.adapters.languages.python import VirtualEnv
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import RepairPolicy, SatisfiedState
from hostconverge.core.models.step import Step
from hostconverge.core.steps.base import require_ok, run_with_retries, state_of

logger = logging.getLogger(__name__)


def venv_probe(venv: VirtualEnv) -> SatisfiedState:
    """missing: no interpreter; broken: interpreter fails the smoke test."""
    if not venv.has_interpreter():
        return SatisfiedState.MISSING
    if not venv.smoke_check().ok:
        return SatisfiedState.BROKEN
    return SatisfiedState.SATISFIED


def venv_step(
    venv: VirtualEnv,
    name: str = "venv",
    depends_on: tuple[str, ...] = (),
) -> Step:
    def repair() -> None:
        logger.warning("Existing venv looks broken; recreating at %s", venv.path)
        venv.remove()

    def apply() -> Receipt:
        require_ok(venv.create(), name)
        return Receipt.success(name, f"Created virtualenv at {venv.path}")

    return Step(
        name=name,
        probe=lambda: venv_probe(venv),
        apply=apply,
        on_mismatch=RepairPolicy.RECREATE_IF_BROKEN,
        repair=repair,
        depends_on=depends_on,
        description=f"Virtualenv at {venv.path}",
    )


def bootstrap_step(
    venv: VirtualEnv,
    name: str = "venv-bootstrap",
    attempts: int = 3,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """pip present and pip/setuptools/wheel upgraded on every run."""

    def apply() -> Receipt:
        if not venv.has_pip():
            ensured = venv.ensure_pip()
            if not ensured.ok:
                logger.info("ensurepip failed in %s: %s", venv.path, ensured.error_text())
        run_with_retries(venv.upgrade_bootstrap, name, attempts=attempts)
        return Receipt.success(name, "pip, setuptools and wheel up to date")

    return Step(
        name=name,
        probe=lambda: state_of(venv.has_pip()),
        apply=apply,
        on_mismatch=RepairPolicy.ALWAYS_REAPPLY,
        depends_on=depends_on,
        description="Upgrade venv bootstrap tooling",
    )


def pip_package_step(
    venv: VirtualEnv,
    name: str,
    packages: list[str],
    binaries: tuple[str, ...] = (),
    upgrade: bool = False,
    pre: bool = False,
    reinstall: bool = False,
    attempts: int = 3,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Application packages installed into the venv.

    The first entry of ``packages`` is the distribution that decides
    installed-ness. Installed but missing one of ``binaries`` is broken
    and triggers a forced reinstall. ``upgrade``/``reinstall`` make the
    step reapply on every run.
    """
    primary = packages[0]

    def probe() -> SatisfiedState:
        if venv.pip_show(primary) is None:
            return SatisfiedState.MISSING
        if not all(venv.has_binary(b) for b in binaries):
            return SatisfiedState.BROKEN
        return SatisfiedState.SATISFIED

    def apply() -> Receipt:
        installed = venv.pip_show(primary) is not None
        force = reinstall
        warnings: list[str] = []
        missing_bins = [b for b in binaries if not venv.has_binary(b)]
        if installed and missing_bins:
            warnings.append(
                f"{primary} install missing {', '.join(missing_bins)}; forcing reinstall"
            )
            force = True

        run_with_retries(
            lambda: venv.pip_install(
                packages, upgrade=upgrade or installed, pre=pre, force_reinstall=force,
            ),
            name,
            attempts=attempts,
        )
        version = venv.installed_version(primary)
        return Receipt.success(
            name,
            f"{primary} {version or '(unknown version)'}",
            warnings=warnings,
            metadata={"version": version, "force_reinstall": force},
        )

    policy = RepairPolicy.ALWAYS_REAPPLY if (upgrade or reinstall) else RepairPolicy.SKIP_IF_SATISFIED
    return Step(
        name=name,
        probe=probe,
        apply=apply,
        on_mismatch=policy,
        depends_on=depends_on,
        description=f"pip install {' '.join(packages)}",
    )


def pip_check_step(
    venv: VirtualEnv,
    hint: str = "",
    name: str = "pip-check",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Dependency conflicts in the venv are reported, never fatal."""

    def apply() -> Receipt:
        result = venv.pip_check()
        if result.ok:
            return Receipt.success(name, "no broken requirements")
        message = "Detected Python package conflicts"
        if hint:
            message += f"; {hint}"
        return Receipt.skip(name, result.stdout.strip()[:500], warnings=[message])

    return Step(
        name=name,
        probe=lambda: state_of(venv.pip_check().ok),
        apply=apply,
        depends_on=depends_on,
        optional=True,
        verify=False,
    )
