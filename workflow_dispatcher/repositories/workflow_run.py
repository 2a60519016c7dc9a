"""Persistence gateway for workflow run records."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workflow_dispatcher.exceptions import StorageError
from workflow_dispatcher.models.workflow_run import (
    NewWorkflowRun,
    WorkflowRun,
    WorkflowRunRecord,
    WorkflowRunUpdate,
)

logger = logging.getLogger(__name__)

_STORAGE_FAILURES = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def _to_columns(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in data.items()
    }


class WorkflowRunRepository:
    """Typed CRUD operations over the ``workflow_runs`` table.

    Each call opens its own session and commits before returning. Failures
    surface as ``StorageError``; retrying is left to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert(self, run: NewWorkflowRun) -> int:
        row = WorkflowRun(**_to_columns(run.model_dump()))
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    record_id = row.id
        except _STORAGE_FAILURES as exc:
            raise StorageError(f"Error inserting workflow run: {exc}") from exc
        logger.debug("Inserted workflow run record with ID: %s", record_id)
        return record_id

    async def update_by_id(self, record_id: int, changes: WorkflowRunUpdate) -> bool:
        updated = await self._update(WorkflowRun.id == record_id, changes)
        logger.debug(
            "Updated workflow run ID %s: %s", record_id, "success" if updated else "not found"
        )
        return updated

    async def update_by_run_id(self, run_id: int, changes: WorkflowRunUpdate) -> bool:
        updated = await self._update(WorkflowRun.run_id == run_id, changes)
        logger.debug(
            "Updated workflow run %s: %s", run_id, "success" if updated else "not found"
        )
        return updated

    async def get_by_id(self, record_id: int) -> Optional[WorkflowRunRecord]:
        stmt = select(WorkflowRun).where(WorkflowRun.id == record_id)
        return await self._fetch_one(stmt)

    async def get_by_run_id(self, run_id: int) -> Optional[WorkflowRunRecord]:
        stmt = (
            select(WorkflowRun)
            .where(WorkflowRun.run_id == run_id)
            .order_by(WorkflowRun.created_at.desc(), WorkflowRun.id.desc())
            .limit(1)
        )
        return await self._fetch_one(stmt)

    async def find_unbound(
        self, org: str, repo: str, workflow_id: int, commit_sha: str
    ) -> Optional[WorkflowRunRecord]:
        """Most recent record of a dispatch that has not been matched to a run yet."""
        stmt = (
            select(WorkflowRun)
            .where(
                WorkflowRun.github_org == org,
                WorkflowRun.github_repo == repo,
                WorkflowRun.workflow_id == workflow_id,
                WorkflowRun.commit_sha == commit_sha,
                WorkflowRun.run_id.is_(None),
            )
            .order_by(WorkflowRun.triggered_at.desc(), WorkflowRun.id.desc())
            .limit(1)
        )
        return await self._fetch_one(stmt)

    async def list_by_repo(
        self, org: str, repo: str, limit: int = 50
    ) -> List[WorkflowRunRecord]:
        stmt = (
            select(WorkflowRun)
            .where(WorkflowRun.github_org == org, WorkflowRun.github_repo == repo)
            .order_by(WorkflowRun.triggered_at.desc(), WorkflowRun.id.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except _STORAGE_FAILURES as exc:
            raise StorageError(
                f"Error fetching workflow runs for {org}/{repo}: {exc}"
            ) from exc
        return [WorkflowRunRecord.model_validate(row) for row in rows]

    async def _fetch_one(self, stmt) -> Optional[WorkflowRunRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = result.scalars().first()
        except _STORAGE_FAILURES as exc:
            raise StorageError(f"Error fetching workflow run: {exc}") from exc
        if row is None:
            return None
        return WorkflowRunRecord.model_validate(row)

    async def _update(self, condition, changes: WorkflowRunUpdate) -> bool:
        values = _to_columns(changes.changes())
        if not values:
            logger.warning("No fields to update for workflow run")
            return False

        conditions = [condition]
        if values.get("run_id") is not None:
            # A bound run id is never replaced by a different one.
            conditions.append(
                or_(WorkflowRun.run_id.is_(None), WorkflowRun.run_id == values["run_id"])
            )

        values["updated_at"] = datetime.now(timezone.utc)
        stmt = (
            update(WorkflowRun)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except _STORAGE_FAILURES as exc:
            raise StorageError(f"Error updating workflow run: {exc}") from exc
        return result.rowcount is not None and result.rowcount > 0
