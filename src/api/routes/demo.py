# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Demo API routes for contextual logging.

Each endpoint exercises a part of the diagnostic context: request-scoped
fields set by the middleware, business-scoped fields set by the service,
scoped mutation, propagation to worker threads and error mapping.
"""

import asyncio
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from src.constants import DEFAULT_USER_OPERATION, NOT_AVAILABLE, OPERATION_HEADER
from src.models.api import (
    ContextInfoResponse,
    ErrorResponse,
    ProcessRequest,
    ValidationErrorResponse,
)
from src.observability import DiagnosticContextManager, get_logger
from src.services.logging_service import LoggingService

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

_logging_service: Optional[LoggingService] = None


def set_logging_service(service: Optional[LoggingService]) -> None:
    """Set the global logging service instance.

    :param service: LoggingService instance (None to unset)
    :type service: Optional[LoggingService]
    """
    global _logging_service
    _logging_service = service


def get_logging_service() -> LoggingService:
    """Dependency returning the logging service.

    :returns: LoggingService instance
    :rtype: LoggingService
    :raises HTTPException: 503 if the application has not started
    """
    if _logging_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Logging service not initialized",
        )
    return _logging_service


@router.get("/hello", response_class=PlainTextResponse, tags=["Basic Operations"])
async def hello() -> str:
    """Return a simple hello message."""
    logger.info("Received request for /api/hello endpoint")
    response = "Hello from FastAPI with contextual logging!"
    logger.debug(f"Returning response: {response}")
    return response


@router.get("/health", response_class=PlainTextResponse, tags=["Basic Operations"])
async def health() -> str:
    """Return the health status as plain text."""
    logger.info("Received request for /api/health endpoint")
    return "Application is running successfully!"


@router.get("/process", response_class=PlainTextResponse, tags=["Logging Demonstration"])
async def process_data(
    input: str = Query("test", description="Input data to process", examples=["hello world"]),
    service: LoggingService = Depends(get_logging_service),
) -> str:
    """Process input data with transaction tracking."""
    logger.info(f"Received request for /api/process endpoint with input: {input}")
    result = service.process_data(input)
    logger.debug(f"Processing completed, returning: {result}")
    return result


@router.get("/demo-logs", response_class=PlainTextResponse, tags=["Logging Demonstration"])
async def demonstrate_logs(service: LoggingService = Depends(get_logging_service)) -> str:
    """Trigger every log level."""
    logger.info("Received request for /api/demo-logs endpoint")
    service.demonstrate_logging()
    return "Check the logs to see different log levels in action!"


@router.get("/demo-mdc", tags=["Context Management"])
async def demonstrate_context(
    service: LoggingService = Depends(get_logging_service),
) -> dict[str, str]:
    """Run the scoped-context demonstration and return the current context."""
    logger.info("Received request for /api/demo-mdc endpoint")
    service.demonstrate_context()
    current = DiagnosticContextManager.instance().get_all()
    logger.debug(f"Returning current context: {current}")
    return current


@router.post(
    "/user/{user_id}/process",
    response_class=PlainTextResponse,
    tags=["Context Management"],
    responses={400: {"model": ErrorResponse, "description": "Invalid request data"}},
)
async def process_with_user_context(
    user_id: str,
    request: Request,
    operation: str = Header(
        DEFAULT_USER_OPERATION,
        alias=OPERATION_HEADER,
        description="Processing operation type",
    ),
    service: LoggingService = Depends(get_logging_service),
) -> str:
    """Process the raw request body with user-specific context."""
    # Undecodable bytes become U+FFFD rather than failing the request.
    data = (await request.body()).decode("utf-8", errors="replace")
    logger.info(
        f"Received request for user-specific processing: userId={user_id}, operation={operation}"
    )
    return service.process_for_user(user_id, operation, data)


@router.get("/async-process", response_class=PlainTextResponse, tags=["Async Processing"])
async def process_async(
    input: str = Query("async-test", description="Input data for async processing"),
    service: LoggingService = Depends(get_logging_service),
) -> str:
    """Process input on a worker thread with the request's context."""
    logger.info(f"Received request for async processing with input: {input}")
    result = await asyncio.wrap_future(service.process_data_async(input))
    logger.info("Async processing completed in controller")
    return result


@router.get("/context-info", response_model=ContextInfoResponse, tags=["Context Management"])
async def get_context_info(
    service: LoggingService = Depends(get_logging_service),
) -> ContextInfoResponse:
    """Return the request ID, user ID and full context map."""
    logger.info("Received request for context information")
    return service.context_info()


@router.post(
    "/simulate-error",
    response_class=PlainTextResponse,
    tags=["Error Handling"],
    responses={500: {"description": "Simulated error occurred"}},
)
async def simulate_error(
    throw_error: bool = Query(False, alias="throwError", description="Whether to throw an error"),
) -> PlainTextResponse:
    """Simulate an error that is handled locally."""
    logger.info(f"Received request to simulate error: throwError={throw_error}")
    try:
        if throw_error:
            logger.warning("About to throw simulated error")
            raise RuntimeError("Simulated error for testing context in error scenarios")
        logger.info("No error simulation requested")
        return PlainTextResponse("No error occurred")
    except RuntimeError:
        logger.exception("Simulated error occurred")
        request_id = DiagnosticContextManager.instance().request_id or NOT_AVAILABLE
        return PlainTextResponse(
            f"Error occurred - check logs for details with request ID: {request_id}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


@router.post(
    "/simulate-failure",
    tags=["Error Handling"],
    responses={500: {"model": ErrorResponse, "description": "Failure mapped by the global handler"}},
)
async def simulate_failure(
    kind: Literal["business", "unexpected"] = Query(
        "business", description="Kind of failure to raise"
    ),
    service: LoggingService = Depends(get_logging_service),
) -> None:
    """Raise a failure that the global error mapping turns into a payload."""
    logger.info(f"Received request to simulate failure: kind={kind}")
    service.simulate_failure(kind)


@router.post(
    "/process-validated",
    response_class=PlainTextResponse,
    tags=["Logging Demonstration"],
    responses={400: {"model": ValidationErrorResponse, "description": "Validation failed"}},
)
async def process_validated_data(
    body: ProcessRequest,
    service: LoggingService = Depends(get_logging_service),
) -> str:
    """Process a validated JSON request body."""
    logger.info(f"Received validated process request: {body!r}")
    result = service.process_data(body.data)
    logger.debug(f"Validated processing completed: {result}")
    return result
