from .base import Base, TimestampMixin
from .workflow_run import (
    DISPATCH_CLOCK_SKEW,
    NewWorkflowRun,
    RunConclusion,
    RunStatus,
    WorkflowRun,
    WorkflowRunRecord,
    WorkflowRunUpdate,
    as_utc,
    created_after_dispatch,
    map_conclusion,
    map_status,
)

__all__ = [
    "DISPATCH_CLOCK_SKEW",
    "Base",
    "TimestampMixin",
    "NewWorkflowRun",
    "RunConclusion",
    "RunStatus",
    "WorkflowRun",
    "WorkflowRunRecord",
    "WorkflowRunUpdate",
    "as_utc",
    "created_after_dispatch",
    "map_conclusion",
    "map_status",
]
