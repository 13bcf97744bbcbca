"""
Probe states and repair policies.

A probe answers one question about the live system and reports one of
three states. The repair policy attached to a step decides what the
runner does with that answer:

    satisfied + skip_if_satisfied   → skip
    satisfied + recreate_if_broken  → skip
    satisfied + always_reapply      → apply
    missing   + any policy          → apply
    broken    + recreate_if_broken  → repair, re-probe once, apply
    broken    + other policies      → apply (the action converges by itself)
"""

from __future__ import annotations

from enum import StrEnum


class SatisfiedState(StrEnum):
    """Observed state of whatever a probe inspects."""

    SATISFIED = "satisfied"
    MISSING = "missing"
    BROKEN = "broken"   # partial state exists; needs delete-and-recreate


class RepairPolicy(StrEnum):
    """What to do when a probe does not report ``satisfied``."""

    SKIP_IF_SATISFIED = "skip_if_satisfied"
    RECREATE_IF_BROKEN = "recreate_if_broken"
    ALWAYS_REAPPLY = "always_reapply"


class Decision(StrEnum):
    """Runner decision recorded in the execution log."""

    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"
    WARNED = "warned"     # optional step degraded, run continues
    PLANNED = "planned"   # dry run: would apply


def needs_apply(state: SatisfiedState, policy: RepairPolicy) -> bool:
    """Whether a probed step must be applied under its policy."""
    if policy == RepairPolicy.ALWAYS_REAPPLY:
        return True
    return state != SatisfiedState.SATISFIED
