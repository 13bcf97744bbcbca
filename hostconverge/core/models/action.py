"""
Receipt model — the result contract of applying a step.

Every step's apply() returns a Receipt. Failures are captured here with
an error kind so the runner can decide whether to halt or degrade.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from hostconverge.core.errors import ErrorKind


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Outcome of a single action application.

    ``warnings`` collects non-fatal notes (e.g. optional packages that
    could not be found) that the runner surfaces in the execution log.
    """

    step: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    error_kind: ErrorKind | None = None
    warnings: list[str] = Field(default_factory=list)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @classmethod
    def success(cls, step: str, output: str = "", **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(step=step, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        step: str,
        error: str,
        kind: ErrorKind = ErrorKind.APPLY_FAILED,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(step=step, status="failed", error=error, error_kind=kind, **kwargs)

    @classmethod
    def skip(cls, step: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Create a skip receipt (the action found nothing to do)."""
        return cls(step=step, status="skipped", output=reason, **kwargs)
