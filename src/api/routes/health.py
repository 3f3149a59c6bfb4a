# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Liveness route."""

from fastapi import APIRouter, Request

from src.models import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/healthz", response_model=HealthResponse, response_model_by_alias=True)
async def health_check(request: Request) -> HealthResponse:
    """Report liveness and whether the background pool accepts work."""
    running = request.app.state.executor.running
    return HealthResponse(
        status="healthy" if running else "degraded",
        service=request.app.state.settings.service_name,
        async_executor="running" if running else "stopped",
    )
