import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from workflow_dispatcher.actions.generators import fetch_generators
from workflow_dispatcher.api.deps import get_container
from workflow_dispatcher.exceptions import StorageError
from workflow_dispatcher.github_exceptions import (
    GithubApiError,
    GithubConfigurationError,
    GithubError,
)
from workflow_dispatcher.models.workflow_run import WorkflowRunRecord
from workflow_dispatcher.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/workflow-runs/{org}/{repo}", response_model=List[WorkflowRunRecord])
async def list_workflow_runs(
    org: str,
    repo: str,
    limit: int = Query(50, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
):
    """Most recent tracked runs for a repository."""
    if container.repository is None or not container.connection.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workflow tracking is disabled",
        )
    try:
        return await container.repository.list_by_repo(org, repo, limit)
    except StorageError as exc:
        logger.error(f"Failed to list workflow runs for {org}/{repo}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable"
        )


@router.get("/repos/{owner}/{repo}/generators")
async def list_generators(
    owner: str,
    repo: str,
    ref: str = Query("main"),
    installation_id: Optional[int] = Query(None),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    try:
        client = container.clients.client_for(installation_id)
        generators = await fetch_generators(client, owner, repo, ref)
    except GithubConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    except GithubApiError as exc:
        code = exc.status_code if exc.status_code == 404 else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail=exc.message)
    except GithubError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return {"generators": generators}
