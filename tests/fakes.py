"""In-memory stand-ins shared by the lifecycle tests."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from workflow_dispatcher.actions.monitor import MonitorPolicy
from workflow_dispatcher.database import ConnectionState, create_schema, create_session_factory
from workflow_dispatcher.github_client import WorkflowRunSnapshot
from workflow_dispatcher.repositories import WorkflowRunRepository

FAST_POLICY = MonitorPolicy(
    warmup_seconds=0, poll_interval_seconds=0, max_attempts=5, page_size=5
)


def run_snapshot(
    run_id: int,
    status: str = "queued",
    conclusion: Optional[str] = None,
    started: bool = False,
    **extra,
) -> WorkflowRunSnapshot:
    data = {
        "id": run_id,
        "name": extra.pop("name", "Generate SDK"),
        "workflow_id": extra.pop("workflow_id", 101),
        "status": status,
        "conclusion": conclusion,
        "head_sha": extra.pop("head_sha", "abc123"),
        "head_branch": extra.pop("head_branch", "main"),
        "run_started_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc) if started else None,
        "created_at": datetime(2024, 5, 1, 11, 59, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc),
    }
    data.update(extra)
    return WorkflowRunSnapshot(**data)


class FakeWorkflowApi:
    """
    Scripted workflow API. ``run_pages`` is consumed one entry per poll;
    the last entry repeats. An entry that is an exception is raised.
    """

    def __init__(self, run_pages=None, dispatch_errors: Optional[Dict[int, Exception]] = None):
        self.run_pages: List = list(run_pages or [])
        self.dispatch_errors = dispatch_errors or {}
        self.dispatched: List[dict] = []
        self.list_calls = 0
        self.workflows: List[dict] = []

    async def dispatch_workflow(self, owner, repo, workflow_id, ref, inputs):
        self.dispatched.append(
            {"owner": owner, "repo": repo, "workflow_id": workflow_id, "ref": ref, "inputs": inputs}
        )
        error = self.dispatch_errors.get(workflow_id)
        if error is not None:
            raise error

    async def list_workflow_runs(self, owner, repo, workflow_id, per_page=5):
        self.list_calls += 1
        if not self.run_pages:
            return []
        page = self.run_pages.pop(0) if len(self.run_pages) > 1 else self.run_pages[0]
        if isinstance(page, Exception):
            raise page
        return page

    async def list_workflows(self, owner, repo):
        return self.workflows


class FakeClientFactory:
    def __init__(self, client):
        self.client = client
        self.forgotten: List = []
        self.closed = False

    def client_for(self, installation_id=None):
        return self.client

    async def forget_installation(self, installation_id):
        self.forgotten.append(installation_id)

    async def close(self):
        self.closed = True


async def sqlite_persistence():
    """In-memory database with the schema created and the flag set."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_schema(engine)
    connection = ConnectionState(engine)
    await connection.check_and_set()
    return engine, connection, WorkflowRunRepository(create_session_factory(engine))
