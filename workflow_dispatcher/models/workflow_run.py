"""The ``workflow_runs`` table and the record shapes exchanged with it."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workflow_dispatcher.models.base import Base, TimestampMixin

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def is_terminal(self) -> bool:
        return self is RunStatus.COMPLETED


_STATUS_ORDER = [RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.COMPLETED]


class RunConclusion(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"


# GitHub reports more states than the table stores.
_STATUS_ALIASES = {
    "waiting": RunStatus.QUEUED,
    "requested": RunStatus.QUEUED,
    "pending": RunStatus.QUEUED,
}

_CONCLUSION_ALIASES = {
    "neutral": RunConclusion.SUCCESS,
    "stale": RunConclusion.CANCELLED,
    "startup_failure": RunConclusion.FAILURE,
}


def map_status(value: Optional[str]) -> RunStatus:
    """Map a GitHub run status onto the stored status set."""
    if value in _STATUS_ALIASES:
        return _STATUS_ALIASES[value]
    try:
        return RunStatus(value)
    except ValueError:
        logger.warning("Unknown workflow run status %r, treating as queued", value)
        return RunStatus.QUEUED


def map_conclusion(value: Optional[str]) -> RunConclusion:
    """Map a GitHub run conclusion onto the stored conclusion set."""
    if value in _CONCLUSION_ALIASES:
        return _CONCLUSION_ALIASES[value]
    try:
        return RunConclusion(value)
    except ValueError:
        logger.warning("Unknown workflow run conclusion %r, treating as failure", value)
        return RunConclusion.FAILURE


# Tolerated drift between the local clock and GitHub's.
DISPATCH_CLOCK_SKEW = timedelta(seconds=5)


def as_utc(value: datetime) -> datetime:
    """SQLite returns naive datetimes; stored values are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def created_after_dispatch(run_created_at: Optional[datetime], triggered_at: datetime) -> bool:
    """Whether a run created at ``run_created_at`` can belong to a dispatch made at ``triggered_at``."""
    if run_created_at is None:
        return False
    return as_utc(run_created_at) >= as_utc(triggered_at) - DISPATCH_CLOCK_SKEW


class WorkflowRun(Base, TimestampMixin):
    """Tracks GitHub Actions workflow run executions."""

    __tablename__ = "workflow_runs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'in_progress', 'completed')",
            name="workflow_runs_status_check",
        ),
        CheckConstraint(
            "conclusion IS NULL OR conclusion IN "
            "('success', 'failure', 'cancelled', 'skipped', 'timed_out', 'action_required')",
            name="workflow_runs_conclusion_check",
        ),
        Index("idx_workflow_runs_org_repo", "github_org", "github_repo"),
        Index("idx_workflow_runs_run_id", "run_id"),
        Index("idx_workflow_runs_workflow_id", "workflow_id"),
        Index("idx_workflow_runs_status", "status"),
        Index("idx_workflow_runs_triggered_at", "triggered_at"),
        Index("idx_workflow_runs_commit_sha", "commit_sha"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    github_org: Mapped[str] = mapped_column(String(255), nullable=False)
    github_repo: Mapped[str] = mapped_column(String(255), nullable=False)

    workflow_name: Mapped[str] = mapped_column(String(255), nullable=False)
    workflow_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    run_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    commit_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    commit_ref: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    conclusion: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    version_input: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    triggered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class NewWorkflowRun(BaseModel):
    """Fields for inserting a workflow run record."""

    github_org: str
    github_repo: str
    workflow_name: str
    workflow_id: int
    run_id: Optional[int] = None
    commit_sha: str
    commit_ref: str
    status: RunStatus = RunStatus.QUEUED
    conclusion: Optional[RunConclusion] = None
    version_input: Optional[str] = None
    triggered_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WorkflowRunUpdate(BaseModel):
    """Partial update. Only fields explicitly set are written."""

    run_id: Optional[int] = None
    status: Optional[RunStatus] = None
    conclusion: Optional[RunConclusion] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, mode="python")


class WorkflowRunRecord(BaseModel):
    """Read model of a stored workflow run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    github_org: str
    github_repo: str
    workflow_name: str
    workflow_id: int
    run_id: Optional[int] = None
    commit_sha: str
    commit_ref: str
    status: RunStatus
    conclusion: Optional[RunConclusion] = None
    version_input: Optional[str] = None
    triggered_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
