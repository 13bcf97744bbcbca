"""
Install use case — one installer run from CLI intent to report.

    settings → host detection → preconditions → plan → lock → run

Everything before the runner can fail with a precondition or config
error; those are returned in the result, never raised, so every entry
point renders failures the same way.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from hostconverge.adapters.shell.command import CommandRunner
from hostconverge.core.config.loader import ConfigError, load_settings
from hostconverge.core.context import Host
from hostconverge.core.engine.runner import RunReport, run_plan
from hostconverge.core.errors import ErrorKind, PlanValidationError, PreconditionFailed
from hostconverge.core.installers import INSTALLERS, get_installer
from hostconverge.core.persistence.lock import default_lock_path, run_lock

logger = logging.getLogger(__name__)

LOCK_DIR_ENV_VAR = "HC_LOCK_DIR"


@dataclass
class InstallResult:
    """Outcome of one installer invocation."""

    installer: str
    dry_run: bool = False
    report: RunReport | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    def to_dict(self) -> dict:
        result: dict = {"installer": self.installer, "dry_run": self.dry_run, "ok": self.ok}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind.value if self.error_kind else None
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def _fail(result: InstallResult, message: str, kind: ErrorKind) -> InstallResult:
    result.error = message
    result.error_kind = kind
    logger.error("%s: %s", result.installer, message)
    return result


def run_installer(
    name: str,
    target_user: str | None = None,
    dry_run: bool = False,
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    host: Host | None = None,
    use_lock: bool = True,
    lock_dir: Path | None = None,
    require_root: bool = True,
) -> InstallResult:
    """Converge the host to the named installer's plan.

    Args:
        name: Installer name.
        target_user: TARGET_USER argument, for installers that take one.
        dry_run: Probe only; report what would change.
        config_path: Optional YAML config file.
        env: Environment mapping for settings (default: ``os.environ``).
        host: Pre-built Host (tests); detected from the machine otherwise.
        use_lock: Hold the per-installer run lock while applying.
        lock_dir: Directory for the lock file (default ``$HC_LOCK_DIR``
            or ``/run/lock``).
        require_root: Refuse to apply unless running as root.

    Returns:
        InstallResult with the run report or the reason nothing ran.
    """
    result = InstallResult(installer=name, dry_run=dry_run)

    installer = get_installer(name)
    if installer is None:
        return _fail(
            result,
            f"Unknown installer '{name}'. Available: {', '.join(sorted(INSTALLERS))}",
            ErrorKind.PRECONDITION_FAILED,
        )

    if require_root and not dry_run and os.geteuid() != 0:
        return _fail(result, "Must be run as root (sudo).", ErrorKind.PRECONDITION_FAILED)

    overrides = {"target_user": target_user} if installer.takes_target_user else {}
    try:
        settings = load_settings(name, env=env, config_path=config_path, overrides=overrides)
    except ConfigError as e:
        return _fail(result, str(e), ErrorKind.PRECONDITION_FAILED)

    if host is None:
        host = Host.detect(CommandRunner())

    try:
        installer.check_preconditions(host, settings)
        plan = installer.build_plan(host, settings)
    except PreconditionFailed as e:
        return _fail(result, str(e), e.kind)
    except PlanValidationError as e:
        return _fail(result, f"Invalid plan: {e}", ErrorKind.PRECONDITION_FAILED)

    if dry_run or not use_lock:
        result.report = run_plan(plan, dry_run=dry_run)
    else:
        env_dir = (os.environ if env is None else env).get(LOCK_DIR_ENV_VAR)
        if lock_dir is None and env_dir:
            lock_dir = Path(env_dir)
        try:
            with run_lock(default_lock_path(name, lock_dir)):
                result.report = run_plan(plan)
        except PreconditionFailed as e:
            return _fail(result, str(e), e.kind)

    failure = result.report.failure
    if failure is not None:
        result.error = f"{failure.step_name}: {failure.detail}"
        result.error_kind = failure.error_kind
    return result
