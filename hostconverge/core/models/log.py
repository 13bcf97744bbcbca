"""
ExecutionLog — the append-only audit trail of a single run.

Created fresh by the runner, printed by the CLI, then discarded.
There is no history file.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from hostconverge.core.errors import ErrorKind
from hostconverge.core.models.state import Decision, SatisfiedState


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class LogEntry(BaseModel):
    """One runner decision about one step."""

    model_config = {"frozen": True}

    step_name: str
    decision: Decision
    timestamp: str = Field(default_factory=_now_iso)
    probed: SatisfiedState | None = None
    detail: str = ""
    error_kind: ErrorKind | None = None
    warnings: list[str] = Field(default_factory=list)
    duration_ms: int = 0


class ExecutionLog(BaseModel):
    """Ordered decisions of a run. Entries can be appended, never changed."""

    run_id: str = ""
    plan: str = ""
    started_at: str = Field(default_factory=_now_iso)
    _entries: list[LogEntry] = PrivateAttr(default_factory=list)

    def append(self, entry: LogEntry) -> None:
        self._entries.append(entry)

    def record(self, step_name: str, decision: Decision, **kwargs: Any) -> LogEntry:
        """Build an entry and append it."""
        entry = LogEntry(step_name=step_name, decision=decision, **kwargs)
        self.append(entry)
        return entry

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def decisions(self) -> dict[str, Decision]:
        """Map of step name → decision, in run order."""
        return {e.step_name: e.decision for e in self._entries}

    def names_with(self, decision: Decision) -> list[str]:
        return [e.step_name for e in self._entries if e.decision == decision]

    @property
    def failure(self) -> LogEntry | None:
        """The entry that halted the run, if any."""
        for entry in self._entries:
            if entry.decision == Decision.FAILED:
                return entry
        return None

    @property
    def warnings(self) -> list[str]:
        """Every warning raised during the run, degraded steps included."""
        out: list[str] = []
        for entry in self._entries:
            out.extend(f"{entry.step_name}: {w}" for w in entry.warnings)
            if entry.decision == Decision.WARNED and not entry.warnings:
                out.append(f"{entry.step_name}: {entry.detail}")
        return out

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "plan": self.plan,
            "started_at": self.started_at,
            "entries": [e.model_dump(mode="json") for e in self._entries],
        }
