# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""API request and response models for REST endpoints.

Wire names are camelCase (``requestId``, ``fullContext``); Python attributes
stay snake_case and are populated by either name.
"""

import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from src.constants import NOT_AVAILABLE

MAX_DATA_LENGTH = 1000


def current_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class ApiModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# -------------------------------------------------------------------------
# Health & Status Models
# -------------------------------------------------------------------------


class HealthResponse(ApiModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Health status")
    service: str = Field(..., description="Service name", examples=["mdc-logging-demo"])
    async_executor: str = Field(
        ...,
        alias="asyncExecutor",
        description="State of the background worker pool",
        examples=["running"],
    )


# -------------------------------------------------------------------------
# Processing Models
# -------------------------------------------------------------------------


class ProcessRequest(ApiModel):
    """Request for data processing operations."""

    data: str = Field(..., description="Data to be processed", examples=["Hello World"])
    options: Optional[str] = Field(
        None, description="Processing options", examples=["uppercase"]
    )

    @field_validator("data")
    @classmethod
    def validate_data(cls, value: str) -> str:
        """Reject blank or oversized data."""
        if not value or not value.strip():
            raise PydanticCustomError("blank", "Data cannot be blank")
        if len(value) > MAX_DATA_LENGTH:
            raise PydanticCustomError(
                "too_long", "Data cannot exceed {max_length} characters", {"max_length": MAX_DATA_LENGTH}
            )
        return value


# -------------------------------------------------------------------------
# Context & Error Models
# -------------------------------------------------------------------------


class ContextInfoResponse(ApiModel):
    """Response containing current diagnostic context information."""

    request_id: str = Field(
        ...,
        alias="requestId",
        description="Unique request identifier",
        examples=["abc123-def456-ghi789"],
    )
    user_id: str = Field(
        ..., alias="userId", description="User identifier", examples=["john.doe"]
    )
    full_context: dict[str, str] = Field(
        default_factory=dict, alias="fullContext", description="Complete context map"
    )
    timestamp: int = Field(
        default_factory=current_millis,
        description="Response timestamp (epoch milliseconds)",
        examples=[1754632612322],
    )


class ErrorResponse(ApiModel):
    """Error response with contextual information."""

    message: str = Field(
        ..., description="Error message", examples=["An error occurred during processing"]
    )
    request_id: str = Field(
        default=NOT_AVAILABLE,
        alias="requestId",
        description="Request ID for tracking",
        examples=["abc123-def456-ghi789"],
    )
    timestamp: int = Field(
        default_factory=current_millis, description="Error timestamp (epoch milliseconds)"
    )
    status: int = Field(..., description="HTTP status code", examples=[500])


class ValidationErrorResponse(ErrorResponse):
    """Validation error response listing each offending field."""

    errors: dict[str, str] = Field(
        default_factory=dict, description="Field name to validation message"
    )
