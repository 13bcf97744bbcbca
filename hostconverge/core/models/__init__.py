"""
Domain models — the types the engine and installers share.

All models are re-exported here for convenient access:

    from hostconverge.core.models import Step, Plan, Receipt, ExecutionLog
"""

from hostconverge.core.models.action import Receipt
from hostconverge.core.models.log import ExecutionLog, LogEntry
from hostconverge.core.models.settings import (
    InstallerSettings,
    MavproxySettings,
    MotioneyeSettings,
    SambaSettings,
)
from hostconverge.core.models.state import (
    Decision,
    RepairPolicy,
    SatisfiedState,
    needs_apply,
)
from hostconverge.core.models.step import Plan, Step, validate_steps

__all__ = [
    "Decision",
    # log.py
    "ExecutionLog",
    # settings.py
    "InstallerSettings",
    "LogEntry",
    "MavproxySettings",
    "MotioneyeSettings",
    # step.py
    "Plan",
    # action.py
    "Receipt",
    # state.py
    "RepairPolicy",
    "SambaSettings",
    "SatisfiedState",
    "Step",
    "needs_apply",
    "validate_steps",
]
