"""Repository exports."""

from .workflow_run import WorkflowRunRepository

__all__ = ["WorkflowRunRepository"]
