# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""FastAPI application demonstrating request-scoped contextual logging."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import uvicorn

from src.api.errors import register_exception_handlers
from src.api.routes import demo_router, health_router, set_logging_service
from src.config import Settings, get_settings
from src.observability import (
    ContextAwareExecutor,
    add_request_context_middleware,
    get_logger,
    initialize_logging,
)
from src.services import LoggingService

logger = get_logger(__name__)

OPENAPI_TAGS = [
    {"name": "Basic Operations", "description": "Greeting and plain-text health endpoints"},
    {"name": "Logging Demonstration", "description": "Service-layer logging with transactions"},
    {"name": "Context Management", "description": "Inspecting and scoping the diagnostic context"},
    {"name": "Async Processing", "description": "Context propagation to worker threads"},
    {"name": "Error Handling", "description": "Error payloads carrying the request ID"},
    {"name": "health", "description": "Liveness check"},
]


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application.

    :param settings: Service settings (defaults to the environment)
    :type settings: Optional[Settings]
    :returns: Configured application
    :rtype: FastAPI
    """
    settings = settings or get_settings()
    initialize_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        service_name=settings.service_name,
        log_dir=settings.log_dir if settings.log_to_file else None,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown."""
        logger.info("Initializing application...")
        executor = ContextAwareExecutor.from_settings(settings)
        app.state.settings = settings
        app.state.executor = executor
        set_logging_service(LoggingService(executor))
        logger.info("Application initialized successfully")

        yield

        logger.info("Shutting down application...")
        set_logging_service(None)
        executor.shutdown(wait=True)
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="MDC Logging Demo API",
        description=(
            "Demonstrates request-scoped contextual logging: every log line "
            "carries requestId, userId, sessionId, clientIp and userAgent, "
            "including lines emitted on background worker threads."
        ),
        version="1.0.0",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
    )

    # Middleware added last runs first: the context middleware must wrap
    # the exception boundary so error payloads still see the requestId.
    register_exception_handlers(app)
    add_request_context_middleware(app)

    app.include_router(health_router)
    app.include_router(demo_router)
    return app


app = create_app()


if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run("src.api.app:app", host=_settings.api_host, port=_settings.api_port)
