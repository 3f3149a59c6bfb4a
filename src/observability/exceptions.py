# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Custom exceptions for the observability package."""

from typing import Optional


class ObservabilityError(Exception):
    """Base exception for observability-related errors."""


class ExecutorCapacityError(ObservabilityError):
    """Raised when the context-aware executor is saturated and set to abort.

    The pool is saturated when every worker is busy and the backlog queue is
    full.
    """

    def __init__(
        self,
        max_pool_size: int,
        queue_capacity: int,
        message: Optional[str] = None,
    ) -> None:
        """Initialize ExecutorCapacityError.

        :param max_pool_size: Maximum number of worker threads
        :type max_pool_size: int
        :param queue_capacity: Size of the backlog queue
        :type queue_capacity: int
        :param message: Optional custom message
        :type message: Optional[str]
        """
        self.max_pool_size = max_pool_size
        self.queue_capacity = queue_capacity
        self.message = message or (
            f"Executor saturated: {max_pool_size} workers busy and "
            f"{queue_capacity} tasks queued. Task rejected."
        )
        super().__init__(self.message)
