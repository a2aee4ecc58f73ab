"""FastAPI application for webhook ingestion."""

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException

from paybridge.api.webhooks import create_webhook_router
from paybridge.observability.logging import setup_logging_from_settings
from paybridge.webhooks.bridge import WebhookBridge, get_webhook_bridge

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(default=None, description="Detailed error information")


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    """Application lifespan handler."""
    setup_logging_from_settings()
    logger.info("application_starting")
    yield
    logger.info("application_shutting_down")


def create_app(
    bridge: WebhookBridge | None = None,
    title: str = "paybridge",
    version: str = "1.0.0",
) -> FastAPI:
    """Create the webhook ingest application.

    Args:
        bridge: Bridge deliveries are published on (process default if None).
        title: API title.
        version: API version.

    Returns:
        Configured FastAPI application.
    """
    bridge = bridge or get_webhook_bridge()
    app = FastAPI(title=title, version=version, lifespan=lifespan)
    app.state.webhook_bridge = bridge

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            ).model_dump(),
        )

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Liveness probe with the current subscriber count."""
        return {"status": "ok", "subscribers": bridge.subscriber_count}

    app.include_router(create_webhook_router(bridge))
    return app
