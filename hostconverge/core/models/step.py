"""
Step and Plan — the declarative description of a provisioning run.

A Step pairs a read-only probe with a mutating apply and a repair
policy. A Plan is an ordered list of steps; ordering is authored, and
declared dependencies are validated against it, never used to reorder.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from hostconverge.core.errors import PlanValidationError
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import RepairPolicy, SatisfiedState


@dataclass(frozen=True)
class Step:
    """A stateless descriptor of one convergence unit.

    Args:
        name: Unique name within the plan.
        probe: Side-effect-free check of the live system.
        apply: Mutation that drives the system toward ``satisfied``.
        on_mismatch: Repair policy.
        repair: Removes a broken artifact before re-probing.
        depends_on: Names of earlier steps this one relies on.
        optional: Failures degrade to warnings instead of halting.
        verify: Re-probe after apply and fail unless ``satisfied``.
    """

    name: str
    probe: Callable[[], SatisfiedState]
    apply: Callable[[], Receipt]
    on_mismatch: RepairPolicy = RepairPolicy.SKIP_IF_SATISFIED
    repair: Callable[[], None] | None = None
    depends_on: tuple[str, ...] = ()
    optional: bool = False
    verify: bool = True
    description: str = ""

    def __repr__(self) -> str:
        return f"<Step {self.name!r} policy={self.on_mismatch.value}>"


@dataclass
class Plan:
    """An ordered, validated sequence of steps.

    ``notes`` are operator hints printed after a successful run.
    """

    name: str
    steps: list[Step] = field(default_factory=list)
    description: str = ""
    notes: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        errors = validate_steps(self.steps)
        if errors:
            raise PlanValidationError(errors)

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)


def validate_steps(steps: list[Step]) -> list[str]:
    """Validate step names and dependency declarations.

    Checks for:
    - Empty or duplicate step names
    - Dependencies on unknown steps
    - Dependencies on steps that come later (or on the step itself)

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    all_names = {s.name for s in steps}
    seen: set[str] = set()

    for step in steps:
        if not step.name:
            errors.append("Step with empty name")
            continue
        if step.name in seen:
            errors.append(f"Duplicate step name: {step.name}")
        for dep in step.depends_on:
            if dep not in all_names:
                errors.append(f"Step '{step.name}' depends on unknown step '{dep}'")
            elif dep not in seen:
                errors.append(
                    f"Step '{step.name}' depends on '{dep}', which does not run before it"
                )
        if step.on_mismatch == RepairPolicy.RECREATE_IF_BROKEN and step.repair is None:
            errors.append(f"Step '{step.name}' uses recreate_if_broken but has no repair")
        seen.add(step.name)

    return errors
