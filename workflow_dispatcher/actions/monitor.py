"""Poll a dispatched workflow until its run finishes.

GitHub's dispatch endpoint does not return the id of the run it creates, so
the monitor waits for the run to appear in the workflow's run list and binds
the most recent dispatch run created after the record was triggered. Once
bound, the monitor keeps following that run id. Two dispatches of the same
workflow in a short window can still be attributed to the wrong record.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

import httpx
from pydantic import ValidationError

from workflow_dispatcher.config import Settings
from workflow_dispatcher.database.connection import ConnectionState
from workflow_dispatcher.exceptions import FetchError, StorageError
from workflow_dispatcher.github_client import WorkflowControlApi, WorkflowRunSnapshot
from workflow_dispatcher.github_exceptions import (
    GithubAllRateLimitError,
    GithubApiError,
    GithubError,
    GithubRateLimitError,
)
from workflow_dispatcher.models.workflow_run import (
    RunConclusion,
    RunStatus,
    WorkflowRunUpdate,
    as_utc,
    created_after_dispatch,
    map_conclusion,
    map_status,
)
from workflow_dispatcher.repositories.workflow_run import WorkflowRunRepository

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class MonitorPolicy:
    """Timing of the poll loop. Defaults give a ten minute ceiling."""

    warmup_seconds: float = 5.0
    poll_interval_seconds: float = 10.0
    max_attempts: int = 60
    page_size: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "MonitorPolicy":
        return cls(
            warmup_seconds=settings.MONITOR_WARMUP_SECONDS,
            poll_interval_seconds=settings.MONITOR_POLL_INTERVAL_SECONDS,
            max_attempts=settings.MONITOR_MAX_ATTEMPTS,
            page_size=settings.MONITOR_PAGE_SIZE,
        )


class _Tracking:
    """What this monitor invocation has written to its record so far."""

    def __init__(self, record_id: Optional[int]) -> None:
        self.record_id = record_id
        self.run_id: Optional[int] = None
        self.status = RunStatus.QUEUED
        self.triggered_at: Optional[datetime] = None


class WorkflowMonitor:
    def __init__(
        self,
        api: WorkflowControlApi,
        connection: ConnectionState,
        repository: Optional[WorkflowRunRepository] = None,
        policy: Optional[MonitorPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.api = api
        self.connection = connection
        self.repository = repository
        self.policy = policy or MonitorPolicy()
        self._sleep = sleep

    async def monitor(
        self,
        owner: str,
        repo: str,
        workflow_name: str,
        workflow_id: int,
        record_id: Optional[int] = None,
    ) -> None:
        """
        Follow the latest run of ``workflow_id`` until it completes or the
        attempt budget runs out. Outcomes are reported through logs and the
        tracked record only.
        """
        policy = self.policy
        tracking = _Tracking(record_id)

        logger.info(f"Starting to monitor workflow: {workflow_name}")
        await self._load_trigger_time(tracking)
        await self._sleep(policy.warmup_seconds)

        for attempt in range(1, policy.max_attempts + 1):
            try:
                runs = await self._fetch_runs(owner, repo, workflow_id)
            except FetchError as exc:
                logger.error(
                    f"Error checking workflow {workflow_name}: {exc}",
                    extra={"attempt": attempt, "status_code": exc.status_code},
                )
                await self._sleep(max(policy.poll_interval_seconds, exc.retry_after or 0))
                continue

            run = self._select_run(runs, tracking)
            if run is None:
                logger.debug(f"No runs found yet for workflow: {workflow_name}")
                await self._sleep(policy.poll_interval_seconds)
                continue

            status = map_status(run.status)
            logger.debug(
                f"Workflow {workflow_name} - Status: {run.status}, Conclusion: {run.conclusion or 'N/A'}"
            )

            await self._correlate(run, status, tracking)

            if status.is_terminal():
                conclusion = map_conclusion(run.conclusion)
                await self._complete(conclusion, tracking)
                if conclusion is RunConclusion.SUCCESS:
                    logger.info(
                        f"Workflow {workflow_name} completed successfully! Run ID: {run.id}"
                    )
                else:
                    logger.warning(
                        f"Workflow {workflow_name} completed with conclusion: {conclusion.value}. Run ID: {run.id}"
                    )
                return

            await self._sleep(policy.poll_interval_seconds)

        logger.warning(
            f"Monitoring timeout reached for workflow: {workflow_name}",
            extra={"attempts": policy.max_attempts, "record_id": record_id},
        )

    async def _fetch_runs(
        self, owner: str, repo: str, workflow_id: int
    ) -> List[WorkflowRunSnapshot]:
        try:
            return await self.api.list_workflow_runs(
                owner, repo, workflow_id, per_page=self.policy.page_size
            )
        except (GithubRateLimitError, GithubAllRateLimitError) as exc:
            raise FetchError(str(exc), retry_after=_seconds_until(exc.retry_after)) from exc
        except GithubApiError as exc:
            raise FetchError(
                f"Status: {exc.status_code}. Message: {exc.message}", exc.status_code
            ) from exc
        except (GithubError, httpx.HTTPError, ValidationError, ValueError) as exc:
            raise FetchError(str(exc)) from exc

    @staticmethod
    def _select_run(
        runs: List[WorkflowRunSnapshot], tracking: _Tracking
    ) -> Optional[WorkflowRunSnapshot]:
        if tracking.run_id is not None:
            for run in runs:
                if run.id == tracking.run_id:
                    return run
            return None
        for run in runs:
            if run.event not in (None, "workflow_dispatch"):
                continue
            # Runs older than the dispatch belong to someone else.
            if tracking.triggered_at is not None and not created_after_dispatch(
                run.created_at, tracking.triggered_at
            ):
                continue
            return run
        return None

    async def _load_trigger_time(self, tracking: _Tracking) -> None:
        if not self._persistence_enabled(tracking):
            return
        try:
            record = await self.repository.get_by_id(tracking.record_id)
        except StorageError as exc:
            logger.error("Failed to load workflow run record %s: %s", tracking.record_id, exc)
            return
        if record is not None:
            tracking.triggered_at = as_utc(record.triggered_at)

    def _persistence_enabled(self, tracking: _Tracking) -> bool:
        return (
            self.repository is not None
            and tracking.record_id is not None
            and self.connection.is_available()
        )

    async def _correlate(
        self, run: WorkflowRunSnapshot, status: RunStatus, tracking: _Tracking
    ) -> None:
        if not self._persistence_enabled(tracking):
            tracking.run_id = tracking.run_id or run.id
            return

        # Completion is written by _complete.
        write_status = status if status is not RunStatus.COMPLETED else None
        try:
            existing = await self.repository.get_by_run_id(run.id)
            if existing is None:
                await self._bind(run, write_status, tracking)
                return

            tracking.run_id = run.id
            if existing.id != tracking.record_id:
                logger.warning(
                    "Run %s is already tracked by record %s, detaching record %s",
                    run.id,
                    existing.id,
                    tracking.record_id,
                )
                tracking.record_id = None
                return

            changes = WorkflowRunUpdate()
            if write_status is not None and write_status.rank > existing.status.rank:
                changes.status = write_status
            if run.run_started_at is not None and existing.started_at is None:
                changes.started_at = max(as_utc(run.run_started_at), as_utc(existing.triggered_at))
            if changes.changes():
                await self.repository.update_by_id(tracking.record_id, changes)
                logger.debug(f"Updated DB record {tracking.record_id} to status {status.value}")
            tracking.status = changes.status or existing.status
        except StorageError as exc:
            logger.error("Failed to update workflow run in database: %s", exc)

    async def _bind(
        self,
        run: WorkflowRunSnapshot,
        write_status: Optional[RunStatus],
        tracking: _Tracking,
    ) -> None:
        changes = WorkflowRunUpdate(run_id=run.id)
        if write_status is not None and write_status.rank >= tracking.status.rank:
            changes.status = write_status
        if run.run_started_at is not None:
            started_at = as_utc(run.run_started_at)
            if tracking.triggered_at is not None:
                started_at = max(started_at, tracking.triggered_at)
            changes.started_at = started_at

        tracking.run_id = run.id
        if await self.repository.update_by_id(tracking.record_id, changes):
            tracking.status = changes.status or tracking.status
            logger.debug(f"Updated DB record {tracking.record_id} with run_id {run.id}")
            return

        # The row is gone or a racing writer bound it to a different run.
        logger.warning(
            "Record %s could not be bound to run %s, detaching it",
            tracking.record_id,
            run.id,
        )
        tracking.record_id = None

    async def _complete(self, conclusion: RunConclusion, tracking: _Tracking) -> None:
        if not self._persistence_enabled(tracking):
            return
        try:
            await self.repository.update_by_id(
                tracking.record_id,
                WorkflowRunUpdate(
                    status=RunStatus.COMPLETED,
                    conclusion=conclusion,
                    completed_at=datetime.now(timezone.utc),
                ),
            )
            logger.debug(f"Updated DB record {tracking.record_id} with completion status")
        except StorageError as exc:
            logger.error("Failed to update workflow completion in database: %s", exc)


def _seconds_until(retry_after) -> Optional[float]:
    """Rate-limit hints come as a delay in seconds or as a cooldown deadline."""
    if isinstance(retry_after, datetime):
        return max((as_utc(retry_after) - datetime.now(timezone.utc)).total_seconds(), 0.0)
    return retry_after
