# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Custom exceptions for the service layer.

Raising a :class:`ProcessingError` marks a business failure: the API layer
logs it with the current context and answers with a generic 500 payload.
"""

from typing import Optional


class ProcessingError(Exception):
    """Base exception for business processing failures."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        """Initialize ProcessingError.

        :param message: Internal failure description (never sent to callers)
        :type message: str
        :param operation: Business operation that failed
        :type operation: Optional[str]
        """
        self.message = message
        self.operation = operation
        super().__init__(message)


class SimulatedFailureError(ProcessingError):
    """Raised on purpose to exercise the error handling path."""
