# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Global error mapping for the API.

Three kinds of failure are mapped to JSON payloads that always carry the
current requestId:

- validation failures -> 400 with one message per offending field
- business failures (ProcessingError) -> 500 with a generic message
- anything else -> 500 with an even more generic message

The catch-all runs as a middleware inside RequestContextMiddleware, so the
request context is still in place when the payload is built.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from src.constants import NOT_AVAILABLE
from src.models.api import ErrorResponse, ValidationErrorResponse
from src.observability import LogLevel, create_service_event, get_logger, get_request_id
from src.services.exceptions import ProcessingError

logger = get_logger(__name__)

VALIDATION_FAILED_MESSAGE = "Validation failed"
PROCESSING_FAILED_MESSAGE = "An error occurred during processing"
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


def _field_name(location: Any) -> str:
    """Turn a pydantic error location into a field name.

    ``("body", "data")`` becomes ``data``; ``("query", "throwError")``
    becomes ``throwError``.
    """
    parts = [str(part) for part in location if part not in ("body", "query", "path", "header")]
    return ".".join(parts) if parts else "body"


def _error_response(message: str) -> JSONResponse:
    payload = ErrorResponse(
        message=message,
        request_id=get_request_id() or NOT_AVAILABLE,
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=payload.model_dump(by_alias=True),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Map request validation errors to a 400 payload.

    :param request: Incoming request
    :param exc: Validation error raised by FastAPI
    :returns: 400 response listing each offending field
    """
    errors: dict[str, str] = {}
    for error in exc.errors():
        errors.setdefault(_field_name(error.get("loc", ())), error.get("msg", "Invalid value"))

    logger.event(
        create_service_event(
            event="validation_error",
            level=LogLevel.WARNING,
            http_method=request.method,
            http_path=request.url.path,
            http_status_code=status.HTTP_400_BAD_REQUEST,
            error=", ".join(f"{k}: {v}" for k, v in errors.items()),
        )
    )
    payload = ValidationErrorResponse(
        message=VALIDATION_FAILED_MESSAGE,
        errors=errors,
        request_id=get_request_id() or NOT_AVAILABLE,
        status=status.HTTP_400_BAD_REQUEST,
    )
    logger.debug(f"Validation error response: {payload.model_dump(by_alias=True)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=payload.model_dump(by_alias=True),
    )


async def processing_exception_handler(request: Request, exc: ProcessingError) -> JSONResponse:
    """Map business failures to a generic 500 payload.

    The failure is logged with its traceback and the current context; its
    message is not sent to the caller.

    :param request: Incoming request
    :param exc: Business failure
    :returns: 500 response carrying the request ID
    """
    logger.error(
        f"Processing failure: {exc.message}",
        exc_info=exc,
        error_type=type(exc).__name__,
        failed_operation=exc.operation,
    )
    return _error_response(PROCESSING_FAILED_MESSAGE)


class ExceptionBoundaryMiddleware(BaseHTTPMiddleware):
    """
    Catch-all for failures no exception handler claimed.

    Must be installed inside RequestContextMiddleware (added before it) so
    the request context is still populated when the payload is built.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Convert unhandled exceptions into a generic 500 payload.

        :param request: Incoming request
        :param call_next: Next handler in chain
        :returns: Downstream response, or a 500 error payload
        """
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unexpected exception occurred",
                exc_info=exc,
                error_type=type(exc).__name__,
            )
            return _error_response(UNEXPECTED_ERROR_MESSAGE)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Install the error mapping on a FastAPI app.

    :param app: FastAPI application instance
    :type app: FastAPI
    """
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ProcessingError, processing_exception_handler)
    app.add_middleware(ExceptionBoundaryMiddleware)
