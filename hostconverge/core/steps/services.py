"""
Service steps — unit definition, enablement, running state, health.

The service step is the last one in a plan. It is satisfied when the
unit file on disk is byte-identical to the freshly generated definition,
the unit is enabled and active, and it has been active since every
watched config file last changed. Otherwise it rewrites the definition
(if needed), reloads the manager, enables, clears any failed state,
restarts, and waits for the service to come up. An optional health
command runs last.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from hostconverge.adapters.shell import filesystem as fs
from hostconverge.adapters.shell.command import CommandRunner
from hostconverge.adapters.system.systemd import SystemdManager
from hostconverge.core.errors import HealthCheckFailed
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import SatisfiedState
from hostconverge.core.models.step import Step
from hostconverge.core.steps.base import require_ok

logger = logging.getLogger(__name__)

UNIT_MODE = 0o644


def _stale_since_start(services: SystemdManager, unit: str, watch: list[Path]) -> list[Path]:
    """Watched files modified after ``unit`` last became active.

    systemd reports whole seconds, so mtimes are compared at the same
    resolution.
    """
    since = services.active_since(unit)
    if since is None:
        return []
    return [p for p in watch if p.exists() and int(p.stat().st_mtime) > since]


def service_step(
    services: SystemdManager,
    units: list[str],
    unit_path: Path | None = None,
    render_unit: Callable[[], str] | None = None,
    watch: list[Path] | None = None,
    health_check: list[str] | None = None,
    runner: CommandRunner | None = None,
    enable: bool = True,
    wait_timeout: float = 10.0,
    name: str = "service",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Converge one or more systemd units to enabled + active.

    Args:
        units: Unit names, e.g. ``["motioneye"]`` or ``["smbd", "nmbd"]``.
        unit_path: Where the generated unit file lives (None for units
            shipped by a package).
        render_unit: Produces the expected unit definition.
        watch: Config files whose change requires a restart.
        health_check: Command that must succeed after the restart.
        runner: Runs ``health_check``.
        wait_timeout: Seconds to wait for every unit to become active.
    """
    watch = watch or []

    def unit_current() -> bool:
        if unit_path is None or render_unit is None:
            return True
        return fs.file_matches(unit_path, render_unit(), mode=UNIT_MODE)

    def probe() -> SatisfiedState:
        if not unit_current():
            return SatisfiedState.MISSING
        for unit in units:
            if enable and not services.is_enabled(unit):
                return SatisfiedState.MISSING
            if not services.is_active(unit):
                return SatisfiedState.MISSING
            if _stale_since_start(services, unit, watch):
                return SatisfiedState.MISSING
        return SatisfiedState.SATISFIED

    def apply() -> Receipt:
        actions: list[str] = []
        if not unit_current():
            assert unit_path is not None and render_unit is not None
            fs.atomic_write(unit_path, render_unit(), mode=UNIT_MODE)
            actions.append(f"wrote {unit_path}")
            require_ok(services.daemon_reload(), name, "daemon-reload")
            actions.append("daemon-reload")

        if enable:
            enabled = services.enable(*units)
            if not enabled.ok:
                logger.warning("Enabling %s failed: %s", " ".join(units), enabled.error_text())

        # a unit in the failed state may be rate-limited out of starting
        cleared = services.reset_failed(*units)
        if not cleared.ok:
            logger.debug("reset-failed %s: %s", " ".join(units), cleared.error_text())

        restarted = services.restart(*units)
        if not restarted.ok:
            require_ok(services.start(*units), name, "start")
        actions.append(f"restarted {' '.join(units)}")

        inactive = services.wait_active(units, timeout=wait_timeout)
        if inactive:
            raise HealthCheckFailed(
                f"{', '.join(inactive)} not active after {wait_timeout:g}s. "
                f"Run: systemctl status {inactive[0]}",
                step=name,
            )

        if health_check:
            assert runner is not None
            result = runner.run(health_check, timeout=60)
            if not result.ok:
                raise HealthCheckFailed(
                    f"health check failed: {result.error_text()}", step=name,
                )
            actions.append("health check passed")

        return Receipt.success(name, "; ".join(actions))

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        description=f"Service {' '.join(units)} enabled and active",
    )


def unit_file_step(
    services: SystemdManager,
    unit_path: Path,
    render_unit: Callable[[], str],
    name: str = "unit-file",
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Unit definition on disk, followed by a manager reload when written.

    Used when later steps need the unit known to systemd before the
    final service step runs.
    """

    def apply() -> Receipt:
        fs.atomic_write(unit_path, render_unit(), mode=UNIT_MODE)
        require_ok(services.daemon_reload(), name, "daemon-reload")
        return Receipt.success(name, f"Wrote {unit_path}; daemon reloaded")

    def probe() -> SatisfiedState:
        if fs.file_matches(unit_path, render_unit(), mode=UNIT_MODE):
            return SatisfiedState.SATISFIED
        return SatisfiedState.MISSING

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)
