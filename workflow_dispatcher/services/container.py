"""Long-lived services shared by the HTTP handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from workflow_dispatcher.actions import (
    MonitorPolicy,
    TaskSupervisor,
    WorkflowDispatcher,
    WorkflowMonitor,
    WorkflowOrchestrator,
    WorkflowRunRecorder,
)
from workflow_dispatcher.config import Settings
from workflow_dispatcher.database import (
    ConnectionState,
    create_engine_from_settings,
    create_schema,
    create_session_factory,
)
from workflow_dispatcher.github_auth import GitHubClientFactory
from workflow_dispatcher.github_client import WorkflowControlApi
from workflow_dispatcher.repositories import WorkflowRunRepository

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    connection: ConnectionState
    clients: GitHubClientFactory
    supervisor: TaskSupervisor
    recorder: WorkflowRunRecorder
    monitor_policy: MonitorPolicy
    engine: Optional[AsyncEngine] = None
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    repository: Optional[WorkflowRunRepository] = None

    def orchestrator_for(self, api: WorkflowControlApi) -> WorkflowOrchestrator:
        """Bind the dispatch/monitor pair to the client of one installation."""
        return WorkflowOrchestrator(
            dispatcher=WorkflowDispatcher(api, self.connection, self.repository),
            monitor=WorkflowMonitor(
                api, self.connection, self.repository, policy=self.monitor_policy
            ),
            supervisor=self.supervisor,
        )

    async def start(self) -> None:
        if self.engine is None:
            logger.warning("Database not configured, workflow tracking disabled")
            return

        if self.settings.DB_CREATE_SCHEMA:
            try:
                await create_schema(self.engine)
            except Exception as exc:
                logger.error(f"Failed to create database schema: {exc}")

        if await self.connection.check_and_set():
            logger.info("Database integration enabled")
        else:
            logger.warning("Database connection failed, workflow tracking disabled")

    async def close(self) -> None:
        await self.supervisor.shutdown()
        await self.clients.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_container(
    settings: Settings, clients: Optional[GitHubClientFactory] = None
) -> ServiceContainer:
    engine = create_engine_from_settings(settings)
    session_factory = create_session_factory(engine) if engine is not None else None
    repository = (
        WorkflowRunRepository(session_factory) if session_factory is not None else None
    )
    connection = ConnectionState(engine)

    return ServiceContainer(
        settings=settings,
        connection=connection,
        clients=clients or GitHubClientFactory(settings),
        supervisor=TaskSupervisor(),
        recorder=WorkflowRunRecorder(connection, repository),
        monitor_policy=MonitorPolicy.from_settings(settings),
        engine=engine,
        session_factory=session_factory,
        repository=repository,
    )
