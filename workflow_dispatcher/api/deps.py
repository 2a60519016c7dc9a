"""Common dependencies for API endpoints."""

from fastapi import Request

from workflow_dispatcher.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


__all__ = ["get_container"]
