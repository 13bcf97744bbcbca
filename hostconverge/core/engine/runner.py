"""
Engine runner — the central convergence loop.

Takes a Plan and walks it top to bottom. For each step:

    probe → (broken + recreate_if_broken: repair → re-probe once)
          → skip, or apply → verify (re-probe)

Every decision lands in the ExecutionLog. The first non-optional
failure halts the plan; nothing after it runs and nothing before it is
rolled back. Optional steps that fail are logged as warnings and the
run continues. The runner never retries — retries live in actions.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar

from hostconverge.core.errors import ErrorKind, ProvisionError, StateBroken
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.log import ExecutionLog, LogEntry
from hostconverge.core.models.state import Decision, RepairPolicy, SatisfiedState, needs_apply
from hostconverge.core.models.step import Plan, Step

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MARKERS = {
    Decision.SKIPPED: "⊘",
    Decision.APPLIED: "✓",
    Decision.FAILED: "✗",
    Decision.WARNED: "⚠",
    Decision.PLANNED: "→",
}


@dataclass
class RunReport:
    """Result of running a plan."""

    run_id: str
    plan: str
    log: ExecutionLog
    receipts: list[Receipt] = field(default_factory=list)
    dry_run: bool = False
    notes: list[str] = field(default_factory=list)

    @property
    def failure(self) -> LogEntry | None:
        return self.log.failure

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def applied(self) -> list[str]:
        return self.log.names_with(Decision.APPLIED)

    @property
    def skipped(self) -> list[str]:
        return self.log.names_with(Decision.SKIPPED)

    @property
    def planned(self) -> list[str]:
        return self.log.names_with(Decision.PLANNED)

    @property
    def warnings(self) -> list[str]:
        return self.log.warnings

    @property
    def status(self) -> str:
        if not self.ok:
            return "failed"
        if self.warnings:
            return "degraded"
        return "ok"

    def to_dict(self) -> dict:
        failure = self.failure
        return {
            "run_id": self.run_id,
            "plan": self.plan,
            "dry_run": self.dry_run,
            "status": self.status,
            "applied": self.applied,
            "skipped": self.skipped,
            "planned": self.planned,
            "warnings": self.warnings,
            "failure": failure.model_dump(mode="json") if failure else None,
            "log": self.log.to_dict()["entries"],
            "notes": self.notes,
        }


class _StepFailed(Exception):
    """Internal: carries a failure out of the per-step state machine."""

    def __init__(self, message: str, kind: ErrorKind, probed: SatisfiedState | None = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.probed = probed


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


def run_plan(plan: Plan, dry_run: bool = False, run_id: str | None = None) -> RunReport:
    """Execute a plan, halting on the first unrecoverable failure.

    Args:
        plan: The validated plan.
        dry_run: Probe only; record ``planned`` for steps that would apply.
        run_id: Optional explicit run identifier.

    Returns:
        RunReport with the execution log.
    """
    run_id = run_id or generate_run_id()
    log = ExecutionLog(run_id=run_id, plan=plan.name)
    report = RunReport(run_id=run_id, plan=plan.name, log=log, dry_run=dry_run)

    logger.info("Running plan '%s' (%d steps)%s", plan.name, len(plan), " [dry-run]" if dry_run else "")

    for step in plan.steps:
        entry = _run_step(step, report, dry_run)
        _log_entry(entry)
        if entry.decision == Decision.FAILED:
            logger.error("Plan '%s' halted at step '%s': %s", plan.name, step.name, entry.detail)
            break
    else:
        if not dry_run:
            report.notes = list(plan.notes)

    return report


def _run_step(step: Step, report: RunReport, dry_run: bool) -> LogEntry:
    log = report.log
    start = time.monotonic()

    def elapsed() -> int:
        return int((time.monotonic() - start) * 1000)

    state: SatisfiedState | None = None
    try:
        state = _probe(step)

        if state == SatisfiedState.BROKEN and step.on_mismatch == RepairPolicy.RECREATE_IF_BROKEN:
            if dry_run:
                return log.record(
                    step.name, Decision.PLANNED, probed=state,
                    detail="broken; would remove and recreate", duration_ms=elapsed(),
                )
            state = _repair(step)

        if not needs_apply(state, step.on_mismatch):
            return log.record(step.name, Decision.SKIPPED, probed=state, duration_ms=elapsed())

        if dry_run:
            return log.record(
                step.name, Decision.PLANNED, probed=state,
                detail=f"{state.value}; would apply", duration_ms=elapsed(),
            )

        receipt = _apply(step)
        report.receipts.append(receipt)
        if receipt.failed:
            raise _StepFailed(
                receipt.error or "apply failed",
                receipt.error_kind or ErrorKind.APPLY_FAILED,
                state,
            )

        if receipt.status == "skipped":
            return log.record(
                step.name, Decision.SKIPPED, probed=state, detail=receipt.output,
                warnings=list(receipt.warnings), duration_ms=elapsed(),
            )

        if step.verify:
            after = _probe(step)
            if after != SatisfiedState.SATISFIED:
                raise _StepFailed(
                    f"did not converge (probe reports {after.value} after apply)",
                    ErrorKind.APPLY_FAILED,
                    state,
                )

        return log.record(
            step.name, Decision.APPLIED, probed=state, detail=receipt.output,
            warnings=list(receipt.warnings), duration_ms=elapsed(),
        )

    except _StepFailed as failed:
        decision = Decision.WARNED if step.optional else Decision.FAILED
        return log.record(
            step.name, decision, probed=failed.probed or state,
            detail=failed.message, error_kind=failed.kind, duration_ms=elapsed(),
        )


def _guard(step: Step, what: str, fn: Callable[[], T]) -> T:
    """Call a step callable, turning exceptions into _StepFailed."""
    try:
        return fn()
    except ProvisionError as e:
        raise _StepFailed(e.message, e.kind) from e
    except Exception as e:
        logger.exception("Step '%s' raised during %s", step.name, what)
        raise _StepFailed(f"Unexpected error during {what}: {e}", ErrorKind.APPLY_FAILED) from e


def _probe(step: Step) -> SatisfiedState:
    return _guard(step, "probe", step.probe)


def _repair(step: Step) -> SatisfiedState:
    """Remove a broken artifact and re-probe once."""
    assert step.repair is not None  # enforced by plan validation
    logger.warning("%s: broken state detected; removing and recreating", step.name)
    try:
        _remove_broken(step)
        state = _probe(step)
        if state == SatisfiedState.BROKEN:
            raise StateBroken("still broken after repair", step=step.name)
    except StateBroken as e:
        raise _StepFailed(e.message, e.kind, SatisfiedState.BROKEN) from e
    return state


def _remove_broken(step: Step) -> None:
    try:
        step.repair()
    except StateBroken:
        raise
    except Exception as e:
        raise StateBroken(f"repair failed: {e}", step=step.name) from e


def _apply(step: Step) -> Receipt:
    start = time.monotonic()
    try:
        receipt = step.apply()
    except ProvisionError as e:
        receipt = Receipt.failure(step=step.name, error=e.message, kind=e.kind)
    except Exception as e:
        # Actions should report failures in receipts
        logger.exception("Step '%s' raised during apply", step.name)
        receipt = Receipt.failure(step=step.name, error=f"Unexpected error: {e}")
    receipt.duration_ms = receipt.duration_ms or int((time.monotonic() - start) * 1000)
    return receipt


def _log_entry(entry: LogEntry) -> None:
    marker = _MARKERS.get(entry.decision, "?")
    suffix = f" ({entry.detail})" if entry.detail else ""
    if entry.decision == Decision.FAILED:
        logger.error("%s %s → %s%s", marker, entry.step_name, entry.decision.value, suffix)
    elif entry.decision == Decision.WARNED:
        logger.warning("%s %s → %s%s", marker, entry.step_name, entry.decision.value, suffix)
    else:
        logger.info("%s %s → %s%s", marker, entry.step_name, entry.decision.value, suffix)
    for warning in entry.warnings:
        logger.warning("  %s: %s", entry.step_name, warning)
