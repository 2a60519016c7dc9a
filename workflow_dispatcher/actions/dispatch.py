"""Dispatch a workflow and record the attempt."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

import httpx

from workflow_dispatcher.actions.types import WorkflowInfo
from workflow_dispatcher.database.connection import ConnectionState
from workflow_dispatcher.exceptions import DispatchError, StorageError
from workflow_dispatcher.github_client import WorkflowControlApi
from workflow_dispatcher.github_exceptions import GithubApiError, GithubError
from workflow_dispatcher.models.workflow_run import NewWorkflowRun, RunStatus
from workflow_dispatcher.repositories.workflow_run import WorkflowRunRepository

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """
    Issues ``workflow_dispatch`` requests.

    When persistence is available a ``queued`` record is written *before*
    the API call, so a rejected dispatch still leaves an audit row behind.
    That row is never rolled back.
    """

    def __init__(
        self,
        api: WorkflowControlApi,
        connection: ConnectionState,
        repository: Optional[WorkflowRunRepository] = None,
    ) -> None:
        self.api = api
        self.connection = connection
        self.repository = repository

    async def dispatch(
        self,
        owner: str,
        repo: str,
        workflow: WorkflowInfo,
        ref: str,
        inputs: Optional[Mapping[str, str]] = None,
        commit_sha: str = "unknown",
    ) -> Optional[int]:
        inputs = dict(inputs or {})
        logger.info(f"Dispatching workflow: {workflow.name} ({workflow.path})")

        record_id = await self._record_attempt(owner, repo, workflow, ref, inputs, commit_sha)

        try:
            await self.api.dispatch_workflow(owner, repo, workflow.id, ref, inputs)
        except GithubApiError as exc:
            logger.error(
                f"Error dispatching {workflow.name}! Status: {exc.status_code}. Message: {exc.message}"
            )
            raise DispatchError(workflow.name, exc.status_code, exc.message) from exc
        except (GithubError, httpx.HTTPError) as exc:
            logger.error(f"Error dispatching {workflow.name}: {exc}")
            raise DispatchError(workflow.name, message=str(exc)) from exc

        logger.info(f"Successfully dispatched workflow: {workflow.name}")
        return record_id

    async def _record_attempt(
        self,
        owner: str,
        repo: str,
        workflow: WorkflowInfo,
        ref: str,
        inputs: Mapping[str, str],
        commit_sha: str,
    ) -> Optional[int]:
        if self.repository is None or not self.connection.is_available():
            return None

        version_input = (inputs.get("version") or "")[:50] or None
        try:
            record_id = await self.repository.insert(
                NewWorkflowRun(
                    github_org=owner,
                    github_repo=repo,
                    workflow_name=workflow.name,
                    workflow_id=workflow.id,
                    commit_sha=commit_sha,
                    commit_ref=ref,
                    status=RunStatus.QUEUED,
                    version_input=version_input,
                    triggered_at=datetime.now(timezone.utc),
                )
            )
        except StorageError as exc:
            logger.error("Failed to save workflow run to database: %s", exc)
            return None

        suffix = f" with version {version_input}" if version_input else ""
        logger.debug(f"Created DB record {record_id} for workflow {workflow.name}{suffix}")
        return record_id
