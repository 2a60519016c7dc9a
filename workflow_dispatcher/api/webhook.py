import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from workflow_dispatcher.api.deps import get_container
from workflow_dispatcher.services.container import ServiceContainer
from workflow_dispatcher.services.github_webhook import handle_github_event, verify_signature


async def github_webhook(
    request: Request,
    x_hub_signature_256: str = Header(None),
    x_github_event: str = Header(None),
    x_github_delivery: str = Header(None),
    container: ServiceContainer = Depends(get_container),
):
    """Handle GitHub webhook events."""
    payload_bytes = await request.body()
    verify_signature(container.settings.GITHUB_WEBHOOK_SECRET, x_hub_signature_256, payload_bytes)
    try:
        payload: Optional[Dict[str, Any]] = json.loads(payload_bytes or b"{}")
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload"
        )
    return await handle_github_event(container, x_github_event, x_github_delivery, payload)


def build_router(path: str) -> APIRouter:
    """Mount the webhook receiver at the configured path."""
    router = APIRouter(tags=["Webhooks"])
    router.add_api_route(path, github_webhook, methods=["POST"], status_code=status.HTTP_200_OK)
    return router
