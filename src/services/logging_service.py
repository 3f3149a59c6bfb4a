# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Logging demonstration service.

Business logic for the demo endpoints: each method reads or mutates the
diagnostic context so that the log lines it emits show how the context
flows through a request, into scoped blocks and onto worker threads.
"""

import time
from concurrent.futures import Future
from typing import Optional

from src.constants import NOT_AVAILABLE
from src.models.api import ContextInfoResponse
from src.observability import (
    ContextAwareExecutor,
    DiagnosticContextManager,
    get_logger,
)
from src.services.exceptions import SimulatedFailureError

logger = get_logger(__name__)

INPUT_WARNING_LENGTH = 100
ASYNC_WORK_SECONDS = 0.1


class LoggingService:
    """Demonstrates contextual logging across the request lifecycle.

    The executor is used for background work; tasks submitted through it
    see the context of the request that submitted them.
    """

    def __init__(self, executor: ContextAwareExecutor) -> None:
        """Initialize the service.

        :param executor: Context-aware executor for background work
        :type executor: ContextAwareExecutor
        """
        self.executor = executor
        self._context = DiagnosticContextManager.instance()

    def demonstrate_logging(self) -> None:
        """Emit one line per log level."""
        logger.debug("This is a DEBUG level log message")
        logger.info("This is an INFO level log message")
        logger.warning("This is a WARNING level log message")
        logger.error("This is an ERROR level log message")

    def process_data(self, data: Optional[str]) -> str:
        """Process input inside a business transaction.

        Sets the ``operation`` and a fresh ``transactionId`` for the
        duration of the call and always clears them on the way out.

        :param data: Input to process
        :type data: Optional[str]
        :returns: Upper-cased input, or "Invalid input" for blank input
        :rtype: str
        """
        self._context.set_operation("processData")
        transaction_id = self._context.generate_and_set_transaction_id()
        logger.info(f"Processing data with input: {data}")
        try:
            if data is None or not data.strip():
                logger.warning("Received null or empty input")
                return "Invalid input"

            logger.debug("Step 1: Validating input")
            self._validate_input(data)
            logger.debug("Step 2: Transforming input")
            result = self._transform_input(data)
            logger.debug("Step 3: Processing completed successfully")
            logger.info(f"Data processing completed successfully for transaction: {transaction_id}")
            return result
        except Exception:
            logger.exception(f"Error processing data for transaction: {transaction_id}")
            raise
        finally:
            self._context.clear_business_context()

    def demonstrate_context(self) -> None:
        """Show single-key and multi-key scoped context mutation."""
        logger.info("Demonstrating diagnostic context management")
        self._context.log_current_context()

        with self._context.scoped_value("businessProcess", "dataValidation"):
            logger.info("Executing business process")
            self._perform_business_logic()

        with self._context.scoped_values(
            {"module": "reporting", "reportType": "daily", "format": "PDF"}
        ):
            logger.info("Generating report with specific context")
            self._generate_report()

        logger.info("Context demonstration completed")

    def process_for_user(self, user_id: str, operation: str, data: str) -> str:
        """Process data on behalf of a target user.

        :param user_id: Target user identifier
        :type user_id: str
        :param operation: Business operation label
        :type operation: str
        :param data: Raw data to process
        :type data: str
        :returns: Confirmation message
        :rtype: str
        """
        logger.info(f"User-specific processing requested: userId={user_id}, operation={operation}")
        with self._context.scoped_values({"targetUserId": user_id, "dataSize": str(len(data))}):
            self._context.set_operation(operation)
            logger.info("Processing data for specific user")
            self.process_data(data)
            logger.info("User-specific processing completed")
        return f"Processed data for user: {user_id}"

    def process_data_async(self, data: str) -> "Future[str]":
        """Process input on a worker thread with the caller's context.

        :param data: Input to process
        :type data: str
        :returns: Future resolving to "Async result for: <data>"
        :rtype: Future[str]
        """
        return self.executor.submit(self._run_async_work, data)

    def context_info(self) -> ContextInfoResponse:
        """Build the diagnostic payload for the current context.

        :returns: Context information
        :rtype: ContextInfoResponse
        """
        info = ContextInfoResponse(
            request_id=self._context.request_id or NOT_AVAILABLE,
            user_id=self._context.user_id or NOT_AVAILABLE,
            full_context=self._context.get_all(),
        )
        logger.debug(f"Context info prepared: {info.model_dump(by_alias=True)}")
        return info

    def simulate_failure(self, kind: str) -> None:
        """Raise a failure of the requested kind.

        :param kind: "business" raises SimulatedFailureError, anything else
            raises a RuntimeError (an unclassified failure)
        :type kind: str
        """
        logger.warning(f"About to raise simulated {kind} failure")
        if kind == "business":
            raise SimulatedFailureError("Simulated business failure", operation="simulateFailure")
        raise RuntimeError("Simulated unexpected failure")

    @staticmethod
    def _run_async_work(data: str) -> str:
        logger.info("Starting async processing")
        time.sleep(ASYNC_WORK_SECONDS)
        logger.debug("Async processing in progress")
        return f"Async result for: {data}"

    @staticmethod
    def _validate_input(data: str) -> None:
        logger.debug(f"Validating input: length={len(data)}")
        if len(data) > INPUT_WARNING_LENGTH:
            logger.warning(f"Input length exceeds maximum allowed: {len(data)}")

    @staticmethod
    def _transform_input(data: str) -> str:
        logger.debug("Transforming input to uppercase")
        result = data.upper()
        logger.debug(f"Transformation completed: original='{data}', transformed='{result}'")
        return result

    @staticmethod
    def _perform_business_logic() -> None:
        logger.debug("Executing core business logic")
        logger.info("Business logic executed successfully")

    @staticmethod
    def _generate_report() -> None:
        logger.debug("Starting report generation")
        logger.info("Report generated successfully")
