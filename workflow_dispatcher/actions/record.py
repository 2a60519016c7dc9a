"""Record workflow runs reported by ``workflow_run`` webhook deliveries."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from workflow_dispatcher.database.connection import ConnectionState
from workflow_dispatcher.exceptions import StorageError
from workflow_dispatcher.github_client import WorkflowRunSnapshot
from workflow_dispatcher.models.workflow_run import (
    NewWorkflowRun,
    RunStatus,
    WorkflowRunRecord,
    WorkflowRunUpdate,
    as_utc,
    created_after_dispatch,
    map_conclusion,
    map_status,
)
from workflow_dispatcher.repositories.workflow_run import WorkflowRunRepository

logger = logging.getLogger(__name__)


class WorkflowRunRecorder:
    def __init__(
        self,
        connection: ConnectionState,
        repository: Optional[WorkflowRunRepository] = None,
    ) -> None:
        self.connection = connection
        self.repository = repository

    async def record(
        self,
        owner: str,
        repo: str,
        workflow_run: Union[WorkflowRunSnapshot, Mapping[str, Any]],
    ) -> Optional[int]:
        """
        Upsert the record for ``workflow_run``.

        A run already tracked is moved forward. A ``workflow_dispatch`` run
        is bound to a queued dispatch record for the same workflow and commit
        triggered before it. Anything else is inserted as a new row. Returns
        the record id, or None when nothing was written.
        """
        if self.repository is None or not self.connection.is_available():
            logger.warning("Database not available, skipping workflow run recording")
            return None

        run = (
            workflow_run
            if isinstance(workflow_run, WorkflowRunSnapshot)
            else WorkflowRunSnapshot.model_validate(workflow_run)
        )
        try:
            existing = await self.repository.get_by_run_id(run.id)
            if existing is not None:
                logger.debug(f"Updating existing workflow run {run.id} for {run.name}")
                await self._advance(existing, run)
                logger.info(f"Updated workflow run record for {run.name} (run_id: {run.id})")
                return existing.id

            queued = await self._find_dispatch_record(owner, repo, run)
            if queued is not None and await self._advance(queued, run, bind=True):
                logger.info(
                    f"Bound workflow run {run.id} to dispatch record {queued.id} for {run.name}"
                )
                return queued.id

            return await self._insert(owner, repo, run)
        except StorageError as exc:
            logger.error("Failed to record workflow run in database: %s", exc)
            return None

    async def _find_dispatch_record(
        self, owner: str, repo: str, run: WorkflowRunSnapshot
    ) -> Optional[WorkflowRunRecord]:
        if run.event != "workflow_dispatch" or run.workflow_id is None or not run.head_sha:
            return None
        queued = await self.repository.find_unbound(owner, repo, run.workflow_id, run.head_sha)
        if queued is None or not created_after_dispatch(run.created_at, queued.triggered_at):
            return None
        return queued

    async def _advance(
        self, record: WorkflowRunRecord, run: WorkflowRunSnapshot, bind: bool = False
    ) -> bool:
        status = map_status(run.status)
        changes = WorkflowRunUpdate()
        if bind:
            changes.run_id = run.id
        if status.rank > record.status.rank:
            changes.status = status
        if status.is_terminal() and record.conclusion is None:
            changes.conclusion = map_conclusion(run.conclusion)
            if record.completed_at is None:
                changes.completed_at = run.updated_at or datetime.now(timezone.utc)
        if run.run_started_at is not None and record.started_at is None:
            changes.started_at = max(as_utc(run.run_started_at), as_utc(record.triggered_at))

        if not changes.changes():
            return True
        return await self.repository.update_by_id(record.id, changes)

    async def _insert(self, owner: str, repo: str, run: WorkflowRunSnapshot) -> int:
        status = map_status(run.status)
        completed = status is RunStatus.COMPLETED
        logger.debug(f"Creating new workflow run record for {run.name}")
        record_id = await self.repository.insert(
            NewWorkflowRun(
                github_org=owner,
                github_repo=repo,
                workflow_name=run.name or "unknown",
                workflow_id=run.workflow_id or 0,
                run_id=run.id,
                commit_sha=run.head_sha or "unknown",
                commit_ref=f"refs/heads/{run.head_branch}" if run.head_branch else "unknown",
                status=status,
                conclusion=map_conclusion(run.conclusion) if completed else None,
                triggered_at=run.created_at or run.updated_at or datetime.now(timezone.utc),
                started_at=run.run_started_at,
                completed_at=run.updated_at if completed else None,
            )
        )
        logger.info(f"Created workflow run record {record_id} for {run.name} (run_id: {run.id})")
        return record_id
