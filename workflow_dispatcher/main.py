"""FastAPI application entry point."""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from workflow_dispatcher.api import health, webhook, workflow_runs
from workflow_dispatcher.config import Settings, get_settings
from workflow_dispatcher.core.logging import setup_logging
from workflow_dispatcher.middleware.request_logging import RequestLoggingMiddleware
from workflow_dispatcher.services.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None
) -> FastAPI:
    settings = settings or get_settings()
    container = container or build_container(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Dispatches and monitors GitHub Actions workflows from webhook events",
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.container = container

    # Trace middleware for request logging and correlation
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["Health"])
    app.include_router(webhook.build_router(settings.WEBHOOK_PATH))
    app.include_router(workflow_runs.router, prefix="/api", tags=["Workflow runs"])

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")
        await container.start()
        logger.info(f"Webhook endpoint: {settings.WEBHOOK_PATH}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down, cancelling active monitors")
        await container.close()

    return app


def run() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "workflow_dispatcher.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


setup_logging(get_settings().LOG_LEVEL)

app = create_app()


if __name__ == "__main__":
    run()
