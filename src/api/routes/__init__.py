# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""API routes package."""

from src.api.routes.demo import (
    router as demo_router,
    get_logging_service,
    set_logging_service,
)
from src.api.routes.health import router as health_router

__all__ = [
    "demo_router",
    "health_router",
    "get_logging_service",
    "set_logging_service",
]
