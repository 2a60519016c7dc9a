"""Dispatch workflows and hand their monitoring off to the background."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional, Sequence

from workflow_dispatcher.actions.dispatch import WorkflowDispatcher
from workflow_dispatcher.actions.monitor import WorkflowMonitor
from workflow_dispatcher.actions.supervisor import TaskSupervisor
from workflow_dispatcher.actions.types import DispatchSummary, WorkflowInfo

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    def __init__(
        self,
        dispatcher: WorkflowDispatcher,
        monitor: WorkflowMonitor,
        supervisor: TaskSupervisor,
    ) -> None:
        self.dispatcher = dispatcher
        self.monitor = monitor
        self.supervisor = supervisor

    async def dispatch_and_monitor(
        self,
        owner: str,
        repo: str,
        workflow: WorkflowInfo,
        ref: str,
        inputs: Optional[Mapping[str, str]] = None,
        commit_sha: str = "unknown",
    ) -> asyncio.Task:
        """
        Dispatch ``workflow`` and start monitoring it without waiting.

        ``DispatchError`` propagates. Anything raised later by the monitor is
        logged by the supervisor and never reaches the caller.
        """
        record_id = await self.dispatcher.dispatch(
            owner, repo, workflow, ref, inputs, commit_sha
        )
        return self.supervisor.spawn(
            self.monitor.monitor(owner, repo, workflow.name, workflow.id, record_id),
            name=f"monitor:{owner}/{repo}:{workflow.name}",
        )

    async def dispatch_all(
        self,
        owner: str,
        repo: str,
        workflows: Sequence[WorkflowInfo],
        ref: str,
        inputs: Optional[Mapping[str, str]] = None,
        commit_sha: str = "unknown",
    ) -> DispatchSummary:
        """Dispatch several workflows concurrently; one failure never blocks the rest."""
        results = await asyncio.gather(
            *(
                self.dispatch_and_monitor(owner, repo, workflow, ref, inputs, commit_sha)
                for workflow in workflows
            ),
            return_exceptions=True,
        )

        summary = DispatchSummary()
        for workflow, result in zip(workflows, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Failed to dispatch workflow {workflow.name}: {result}",
                    extra={"workflow_id": workflow.id},
                )
                summary.failed.append(workflow.name)
            else:
                summary.dispatched.append(workflow.name)
        return summary
