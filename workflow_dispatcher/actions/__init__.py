from .dispatch import WorkflowDispatcher
from .generators import fetch_generators
from .monitor import MonitorPolicy, WorkflowMonitor
from .orchestrator import WorkflowOrchestrator
from .record import WorkflowRunRecorder
from .supervisor import TaskSupervisor
from .types import DispatchSummary, WorkflowInfo

__all__ = [
    "DispatchSummary",
    "MonitorPolicy",
    "TaskSupervisor",
    "WorkflowDispatcher",
    "WorkflowInfo",
    "WorkflowMonitor",
    "WorkflowOrchestrator",
    "WorkflowRunRecorder",
    "fetch_generators",
]
