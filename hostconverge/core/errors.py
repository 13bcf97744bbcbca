"""
Error kinds — the failure vocabulary shared by steps and the runner.

Every failure that can stop (or degrade) a run is one of five kinds.
Steps raise the matching ``ProvisionError`` subclass or return a failed
Receipt tagged with the kind; the runner decides what happens next:

    state_broken          handled by the owning step (repair, re-probe once)
    everything else       propagates to the runner, which halts the plan

Optional steps turn any kind into a warning.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of provisioning failures."""

    PRECONDITION_FAILED = "precondition_failed"
    PACKAGE_UNAVAILABLE = "package_unavailable"
    STATE_BROKEN = "state_broken"
    APPLY_FAILED = "apply_failed"
    HEALTH_CHECK_FAILED = "health_check_failed"


class ProvisionError(Exception):
    """Base class for failures raised while probing or applying a step."""

    kind: ErrorKind = ErrorKind.APPLY_FAILED

    def __init__(self, message: str, *, step: str | None = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"{self.step}: {self.message}"
        return self.message


class PreconditionFailed(ProvisionError):
    """Missing privileges, missing tool, or another run holds the lock."""

    kind = ErrorKind.PRECONDITION_FAILED


class ApplyFailed(ProvisionError):
    """An external tool returned failure while applying a step."""

    kind = ErrorKind.APPLY_FAILED


class PackageUnavailable(ApplyFailed):
    """A mandatory OS package has no installable candidate.

    A specialisation of ApplyFailed: the install failed, and the reason
    is known.
    """

    kind = ErrorKind.PACKAGE_UNAVAILABLE

    def __init__(self, packages: list[str], *, step: str | None = None):
        super().__init__(
            f"Package(s) not available: {', '.join(packages)}", step=step,
        )
        self.packages = packages


class StateBroken(ProvisionError):
    """Detected corruption that survived a repair attempt."""

    kind = ErrorKind.STATE_BROKEN


class HealthCheckFailed(ProvisionError):
    """Post-apply verification did not pass within the allotted wait."""

    kind = ErrorKind.HEALTH_CHECK_FAILED


class PlanValidationError(Exception):
    """Raised when a plan declares dependencies its ordering cannot satisfy."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
