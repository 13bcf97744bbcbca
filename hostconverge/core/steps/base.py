"""
Step helpers shared by every step factory.
"""

from __future__ import annotations

from collections.abc import Callable

from hostconverge.adapters.shell.command import CommandResult
from hostconverge.core.errors import ApplyFailed
from hostconverge.core.models.state import SatisfiedState
from hostconverge.core.reliability.retry import retry_call


def state_of(ok: bool) -> SatisfiedState:
    return SatisfiedState.SATISFIED if ok else SatisfiedState.MISSING


def require_ok(result: CommandResult, step: str, what: str = "") -> CommandResult:
    """Raise ApplyFailed unless ``result`` succeeded."""
    if not result.ok:
        prefix = f"{what}: " if what else ""
        raise ApplyFailed(prefix + result.error_text(), step=step)
    return result


def run_with_retries(
    fn: Callable[[], CommandResult],
    step: str,
    attempts: int = 3,
    base_delay: float = 2.0,
) -> CommandResult:
    """Retry a network-bound command, then require success."""
    result = retry_call(fn, lambda r: r.ok, attempts=attempts, base_delay=base_delay, label=step)
    return require_ok(result, step)
