from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import HTTPException, status
from pydantic import ValidationError

from workflow_dispatcher.actions.types import WorkflowInfo
from workflow_dispatcher.github_client import WorkflowRunSnapshot
from workflow_dispatcher.github_exceptions import GithubError
from workflow_dispatcher.services.container import ServiceContainer

logger = logging.getLogger(__name__)


def verify_signature(secret: Optional[str], signature: str | None, body: bytes) -> None:
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook secret is not configured on the server.",
        )

    if not signature or not signature.startswith("sha256="):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature"
        )

    digest = hmac.new(
        secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()

    expected = f"sha256={digest}"
    if not hmac.compare_digest(expected, signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Webhook signature mismatch",
        )


def _repository_coordinates(payload: Dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    repository = payload.get("repository") or {}
    owner = repository.get("owner") or {}
    return owner.get("login") or owner.get("name"), repository.get("name")


def _installation_id(payload: Dict[str, Any]) -> Optional[int]:
    installation = payload.get("installation") or {}
    return installation.get("id")


def _matches_keyword(keyword: str, *values: Optional[str]) -> bool:
    keyword = keyword.lower()
    return any(keyword in (value or "").lower() for value in values)


def select_workflows(workflows: List[Dict[str, Any]], keyword: str) -> List[WorkflowInfo]:
    """Active workflows whose name or path contains ``keyword``."""
    return [
        WorkflowInfo(id=wf["id"], name=wf.get("name") or "", path=wf.get("path") or "")
        for wf in workflows
        if wf.get("state") == "active"
        and _matches_keyword(keyword, wf.get("name"), wf.get("path"))
    ]


async def _handle_push_event(
    container: ServiceContainer, payload: Dict[str, Any]
) -> Dict[str, Any]:
    owner, repo = _repository_coordinates(payload)
    if not owner or not repo:
        return {"status": "ignored", "reason": "missing_repository"}
    if payload.get("deleted"):
        return {"status": "ignored", "reason": "branch_deleted"}

    ref = payload.get("ref")
    if not ref:
        return {"status": "ignored", "reason": "missing_ref"}
    head_commit = payload.get("head_commit") or {}
    commit_sha = payload.get("after") or head_commit.get("id") or "unknown"
    settings = container.settings

    try:
        client = container.clients.client_for(_installation_id(payload))
        workflows = await client.list_workflows(owner, repo)
    except (GithubError, httpx.HTTPError) as exc:
        logger.error(f"Failed to list workflows for {owner}/{repo}: {exc}")
        return {"status": "error", "reason": "workflow_listing_failed"}

    selected = select_workflows(workflows, settings.DISPATCH_WORKFLOW_KEYWORD)
    if not selected:
        logger.info(
            f"No active workflows matching '{settings.DISPATCH_WORKFLOW_KEYWORD}' in {owner}/{repo}"
        )
        return {"status": "processed", "dispatched": [], "failed": []}

    logger.info(f"Found {len(selected)} workflow(s) to dispatch for {owner}/{repo}@{ref}")
    summary = await container.orchestrator_for(client).dispatch_all(
        owner, repo, selected, ref, settings.DISPATCH_INPUTS, commit_sha
    )
    return {
        "status": "processed",
        "dispatched": summary.dispatched,
        "failed": summary.failed,
    }


async def _handle_workflow_run_event(
    container: ServiceContainer, payload: Dict[str, Any]
) -> Dict[str, Any]:
    owner, repo = _repository_coordinates(payload)
    raw_run = payload.get("workflow_run") or {}
    if not owner or not repo or not raw_run:
        return {"status": "ignored", "reason": "missing_data"}

    try:
        run = WorkflowRunSnapshot.model_validate(raw_run)
    except ValidationError as exc:
        logger.warning(f"Invalid workflow_run payload: {exc}")
        return {"status": "ignored", "reason": "invalid_workflow_run"}
    if not run.name or not run.head_sha or not run.head_branch:
        logger.warning("workflow_run payload is missing name, head_sha or head_branch")
        return {"status": "ignored", "reason": "invalid_workflow_run"}

    keyword = container.settings.DISPATCH_WORKFLOW_KEYWORD
    if not _matches_keyword(keyword, run.name, raw_run.get("path")):
        return {"status": "ignored", "reason": "workflow_not_tracked"}

    action = payload.get("action")
    logger.info(f"Workflow run {run.name} ({run.id}) {action}: status={run.status}")
    if run.status == "completed":
        if run.conclusion == "success":
            logger.info(f"Workflow {run.name} completed successfully! Run ID: {run.id}")
        else:
            logger.warning(
                f"Workflow {run.name} completed with conclusion: {run.conclusion}. Run ID: {run.id}"
            )

    record_id = await container.recorder.record(owner, repo, run)
    return {"status": "processed", "record_id": record_id}


async def _handle_installation_event(
    container: ServiceContainer, payload: Dict[str, Any]
) -> Dict[str, Any]:
    action = payload.get("action")
    installation_id = _installation_id(payload)
    if not installation_id:
        return {"status": "ignored", "reason": "missing_installation_id"}

    if action in ("deleted", "suspend"):
        await container.clients.forget_installation(installation_id)
        return {
            "status": "processed",
            "action": f"installation_{action}",
            "installation_id": installation_id,
        }
    return {"status": "ignored", "reason": f"unsupported_installation_action: {action}"}


async def handle_github_event(
    container: ServiceContainer,
    event: str | None,
    delivery_id: str | None,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    owner, repo = _repository_coordinates(payload)
    logger.info(
        f"Event: {event} | Repo: {owner}/{repo} | ID: {delivery_id}",
        extra={"event": event, "delivery_id": delivery_id},
    )

    if event == "ping":
        return {"status": "ok", "zen": payload.get("zen")}
    if event == "push":
        return await _handle_push_event(container, payload)
    if event == "workflow_run":
        return await _handle_workflow_run_event(container, payload)
    if event == "workflow_dispatch":
        workflow = payload.get("workflow")
        logger.info(f"Workflow dispatch event received for {owner}/{repo}: {workflow}")
        return {"status": "processed"}
    if event == "installation":
        return await _handle_installation_event(container, payload)

    return {"status": "ignored", "reason": "event_not_handled"}
