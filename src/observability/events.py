# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""
Typed event definitions for structured logging.

Events are categorized into two streams:
- service_logs: HTTP/API layer events (request lifecycle, errors)
- task_logs: background task events emitted by the context-aware executor

Context fields (requestId, userId, ...) are not part of the event models; the
log formatters attach the current diagnostic context to every record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_ERROR_LENGTH = 200


class LogStream(str, Enum):
    """Log stream identifiers."""

    SERVICE = "service_logs"
    TASK = "task_logs"


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


ServiceEventType = Literal[
    "request_start",
    "request_end",
    "validation_error",
]


class ServiceEvent(BaseModel):
    """
    Service-level log event for HTTP/API operations.

    Captures the request lifecycle and error mapping.
    """

    model_config = ConfigDict(use_enum_values=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stream: Literal[LogStream.SERVICE] = LogStream.SERVICE
    level: LogLevel = LogLevel.INFO
    event: ServiceEventType
    duration_ms: Optional[int] = None
    status: Optional[Literal["success", "error"]] = None
    error: Optional[str] = None

    http_method: Optional[str] = None
    http_path: Optional[str] = None
    http_status_code: Optional[int] = None


TaskEventType = Literal[
    "task_start",
    "task_end",
    "task_rejected",
    "task_caller_runs",
]


class TaskEvent(BaseModel):
    """
    Task-level log event for work handed to the context-aware executor.
    """

    model_config = ConfigDict(use_enum_values=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stream: Literal[LogStream.TASK] = LogStream.TASK
    level: LogLevel = LogLevel.DEBUG
    event: TaskEventType
    duration_ms: Optional[int] = None
    status: Optional[Literal["success", "failed"]] = None
    error: Optional[str] = None

    task_name: Optional[str] = None
    thread_name: Optional[str] = None
    context_keys: Optional[int] = None


def truncate(text: Optional[str], max_length: int = MAX_ERROR_LENGTH) -> Optional[str]:
    """Cap free text carried on an event; None passes through."""
    if text is None:
        return None
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _truncate_error(fields: dict[str, Any]) -> dict[str, Any]:
    if fields.get("error") is not None:
        fields["error"] = truncate(fields["error"])
    return fields


def create_service_event(
    event: ServiceEventType,
    level: LogLevel = LogLevel.INFO,
    **kwargs: Any,
) -> ServiceEvent:
    """Create an HTTP-layer event.

    :param event: Event type
    :type event: ServiceEventType
    :param level: Log level (INFO unless the request failed)
    :type level: LogLevel
    :param kwargs: Event fields such as http_path or duration_ms
    :returns: ServiceEvent instance
    :rtype: ServiceEvent
    """
    return ServiceEvent(event=event, level=level, **_truncate_error(kwargs))


def create_task_event(
    event: TaskEventType,
    level: LogLevel = LogLevel.DEBUG,
    **kwargs: Any,
) -> TaskEvent:
    """Create a background-task event (DEBUG unless the task failed or was rejected)."""
    return TaskEvent(event=event, level=level, **_truncate_error(kwargs))
