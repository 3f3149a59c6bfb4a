# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Pydantic models for the API layer."""

from src.models.api import (
    ContextInfoResponse,
    ErrorResponse,
    HealthResponse,
    ProcessRequest,
    ValidationErrorResponse,
    current_millis,
)

__all__ = [
    "ContextInfoResponse",
    "ErrorResponse",
    "HealthResponse",
    "ProcessRequest",
    "ValidationErrorResponse",
    "current_millis",
]
