# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""
Observability package for the MDC logging demo service.

This package provides request-scoped contextual logging:

Classes:
- DiagnosticContextManager: Singleton over the per-request context store
- ContextScope: Context manager for scoped mutation with per-key restore
- ContextSnapshot: Immutable copy used to move context across threads
- RequestContextMiddleware: Establishes and tears down the request context
- ContextAwareExecutor: Thread pool that propagates the context to tasks
- StructuredLogger/LoggerFactory: Loggers enriched with the context

Usage:
    from src.observability import get_logger, DiagnosticContextManager

    LoggerFactory.initialize(level=logging.INFO, log_format="json")
    logger = get_logger(__name__)

    ctx = DiagnosticContextManager.instance()
    with ctx.scoped_value("operation", "export"):
        logger.info("Exporting")
"""

from src.observability.context import (
    ContextSnapshot,
    ContextStore,
    ContextVarStore,
    DiagnosticContextManager,
    ContextScope,
    get,
    put,
    get_request_id,
    get_user_id,
    generate_and_set_transaction_id,
    set_operation,
    clear_business_context,
    snapshot,
    clear_context,
)
from src.observability.events import (
    LogStream,
    LogLevel,
    ServiceEvent,
    TaskEvent,
    create_service_event,
    create_task_event,
)
from src.observability.exceptions import ObservabilityError, ExecutorCapacityError
from src.observability.logger import (
    LogFormatter,
    JSONFormatter,
    ConsoleFormatter,
    DiagnosticContextFilter,
    StructuredLogger,
    LoggerFactory,
    initialize_logging,
    get_logger,
)
from src.observability.middleware import (
    RequestContextMiddleware,
    add_request_context_middleware,
    resolve_client_ip,
    truncate_user_agent,
)
from src.observability.executor import (
    ContextAwareExecutor,
    run_with_context,
    wrap_with_context,
)

__all__ = [
    # Context
    "ContextSnapshot",
    "ContextStore",
    "ContextVarStore",
    "DiagnosticContextManager",
    "ContextScope",
    "get",
    "put",
    "get_request_id",
    "get_user_id",
    "generate_and_set_transaction_id",
    "set_operation",
    "clear_business_context",
    "snapshot",
    "clear_context",
    # Events
    "LogStream",
    "LogLevel",
    "ServiceEvent",
    "TaskEvent",
    "create_service_event",
    "create_task_event",
    # Exceptions
    "ObservabilityError",
    "ExecutorCapacityError",
    # Logger
    "LogFormatter",
    "JSONFormatter",
    "ConsoleFormatter",
    "DiagnosticContextFilter",
    "StructuredLogger",
    "LoggerFactory",
    "initialize_logging",
    "get_logger",
    # Middleware
    "RequestContextMiddleware",
    "add_request_context_middleware",
    "resolve_client_ip",
    "truncate_user_agent",
    # Executor
    "ContextAwareExecutor",
    "run_with_context",
    "wrap_with_context",
]
