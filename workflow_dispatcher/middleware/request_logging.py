"""Request logging middleware to trace requests and durations.

- Adds a unique X-Request-ID header to responses (and uses any incoming header)
- Logs method, path, status, duration, client IP and the GitHub delivery id
- Does not log request/response bodies to avoid leaking sensitive data
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("workflow_dispatcher.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        start = time.monotonic()

        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        delivery_id = request.headers.get("X-GitHub-Delivery")
        context = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "request_id": request_id,
            "delivery_id": delivery_id,
        }

        try:
            response = await call_next(request)
        except Exception:  # pragma: no cover - we still want to log then reraise
            context["duration_ms"] = int((time.monotonic() - start) * 1000)
            logger.exception("Unhandled exception during request", extra=context)
            raise

        context["status"] = response.status_code
        context["duration_ms"] = int((time.monotonic() - start) * 1000)
        logger.info("Request finished", extra=context)

        response.headers.setdefault("X-Request-ID", request_id)
        return response
