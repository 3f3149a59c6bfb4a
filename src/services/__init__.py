# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Service layer for the MDC logging demo."""

from src.services.exceptions import ProcessingError, SimulatedFailureError
from src.services.logging_service import LoggingService

__all__ = [
    "LoggingService",
    "ProcessingError",
    "SimulatedFailureError",
]
