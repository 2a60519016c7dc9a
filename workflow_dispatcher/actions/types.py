from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class WorkflowInfo:
    """Identity of a workflow definition in a repository."""

    id: int
    name: str
    path: str


@dataclass
class DispatchSummary:
    """Outcome of dispatching several workflows for one triggering event."""

    dispatched: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
