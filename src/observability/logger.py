# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""
Context-enriched logging for the service.

Every handler installed here carries a DiagnosticContextFilter, which copies
the diagnostic context of the emitting thread or task onto the log record as
``record.mdc``. Formatters render that copy, so a line written by a worker
thread shows the requestId of the request that submitted the work.

Main entry points:
- initialize_logging: configure the "src" logger hierarchy once at startup
- get_logger: StructuredLogger accepting extra fields and typed events
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

from src.constants import REQUEST_ID, USER_ID
from src.observability.context import DiagnosticContextManager
from src.observability.events import ServiceEvent, TaskEvent

ROOT_LOGGER_NAME = "src"
DEFAULT_SERVICE_NAME = "mdc-logging-demo"
CONTEXT_ATTR = "mdc"
SHORT_REQUEST_ID_LENGTH = 8
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# LogRecord attributes that are never treated as extra fields.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName", CONTEXT_ATTR}


class DiagnosticContextFilter(logging.Filter):
    """
    Logging filter that copies the diagnostic context onto each record.

    The copy is taken when the record passes the handler, on the thread that
    emitted it.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach the current context to the record.

        :param record: Log record to enrich
        :type record: logging.LogRecord
        :returns: Always True so every record is kept
        :rtype: bool
        """
        if not hasattr(record, CONTEXT_ATTR):
            setattr(record, CONTEXT_ATTR, DiagnosticContextManager.instance().get_all())
        return True


class LogFormatter(ABC, logging.Formatter):
    """Base formatter with access to the record's diagnostic context."""

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME) -> None:
        super().__init__()
        self.service_name = service_name

    @abstractmethod
    def format(self, record: logging.LogRecord) -> str:
        """Render a record."""

    @staticmethod
    def context_of(record: logging.LogRecord) -> dict[str, str]:
        """Return the context attached to a record.

        Records that did not pass a DiagnosticContextFilter fall back to the
        context active while formatting.

        :param record: Log record
        :type record: logging.LogRecord
        :returns: Context entries, empty outside a request
        :rtype: dict[str, str]
        """
        attached = getattr(record, CONTEXT_ATTR, None)
        if attached is not None:
            return dict(attached)
        return DiagnosticContextManager.instance().get_all()

    @staticmethod
    def extras_of(record: logging.LogRecord) -> dict[str, Any]:
        """Return fields passed through ``extra=``.

        :param record: Log record
        :type record: logging.LogRecord
        :returns: Extra fields by name
        :rtype: dict[str, Any]
        """
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }


class JSONFormatter(LogFormatter):
    """
    One JSON object per line, for the log file and for production stdout.

    The diagnostic context goes under ``context``; extra fields are merged
    at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        context = self.context_of(record)
        if context:
            entry["context"] = context
        entry.update(self.extras_of(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(LogFormatter):
    """
    Single-line developer output.

    Layout: ``time [requestId:8] [userId] [thread] LEVEL logger - message``,
    with "-" standing in for absent context fields.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    SUMMARY_FIELDS = ("event", "duration_ms", "status", "error")

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME, use_colors: bool = True) -> None:
        super().__init__(service_name=service_name)
        self.use_colors = use_colors

    def _level(self, levelname: str) -> str:
        padded = f"{levelname:7}"
        color = self.LEVEL_COLORS.get(levelname) if self.use_colors else None
        return f"{color}{padded}{self.RESET}" if color else padded

    def format(self, record: logging.LogRecord) -> str:
        context = self.context_of(record)
        request_id = context.get(REQUEST_ID)
        short_request = request_id[:SHORT_REQUEST_ID_LENGTH] if request_id else "-"
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        line = (
            f"{clock} [{short_request}] [{context.get(USER_ID, '-')}] [{record.threadName}] "
            f"{self._level(record.levelname)} "
            f"{record.name.rsplit('.', 1)[-1]} - {record.getMessage()}"
        )

        extras = self.extras_of(record)
        summary = [f"{key}={extras[key]}" for key in self.SUMMARY_FIELDS if key in extras]
        if summary:
            line += f" ({', '.join(summary)})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger:
    """
    Wrapper over a stdlib logger.

    Keyword arguments become extra fields on the record, and typed events
    from :mod:`src.observability.events` are logged with their fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Processing", item_count=5)
        logger.event(create_service_event("request_start", http_path="/api/hello"))
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self.name = name

    def _log(self, level: int, msg: str, *args, exc_info: Any = None, **kwargs) -> None:
        # stacklevel points the record at the caller of debug()/info()/...
        self._logger.log(level, msg, *args, exc_info=exc_info, extra=kwargs, stacklevel=3)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info: Any = None, **kwargs) -> None:
        """Log at ERROR, optionally with an exception traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        """Log at ERROR with the exception currently being handled."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)

    def event(self, event: Union[ServiceEvent, TaskEvent]) -> None:
        """Log a typed event.

        The message is ``[<stream>] <event>``; the remaining event fields
        (minus timestamp, level and stream) become extra fields.

        :param event: Event instance
        :type event: Union[ServiceEvent, TaskEvent]
        """
        fields = event.model_dump(exclude_none=True, mode="json")
        level = logging.getLevelName(fields.pop("level"))
        stream = fields.pop("stream")
        fields.pop("timestamp", None)
        self._logger.log(level, f"[{stream}] {event.event}", extra=fields)

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    @property
    def level(self) -> int:
        """Effective level of the underlying logger."""
        return self._logger.getEffectiveLevel()


class LoggerFactory:
    """
    Process-wide logging configuration.

    Configures the ``src`` logger once; every module logger below it
    inherits the handlers.
    """

    _initialized: bool = False
    _format: str = "json"
    _level: int = logging.INFO
    _service_name: str = DEFAULT_SERVICE_NAME

    @classmethod
    def initialize(
        cls,
        level: int = logging.INFO,
        log_format: str = "json",
        service_name: str = DEFAULT_SERVICE_NAME,
        log_dir: Optional[str] = None,
    ) -> None:
        """Install handlers on the ``src`` logger. Later calls are no-ops.

        :param level: Log level
        :type level: int
        :param log_format: "json" or "console" for stdout
        :type log_format: str
        :param service_name: Service name written on every line
        :type service_name: str
        :param log_dir: Directory for the rotating JSON log file; None disables it
        :type log_dir: Optional[str]
        """
        if cls._initialized:
            return

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.handlers.clear()
        for handler in cls._build_handlers(level, log_format, service_name, log_dir):
            root.addHandler(handler)
        root.propagate = False

        cls._format = log_format
        cls._level = level
        cls._service_name = service_name
        cls._initialized = True

    @staticmethod
    def _build_handlers(
        level: int,
        log_format: str,
        service_name: str,
        log_dir: Optional[str],
    ) -> list[logging.Handler]:
        stdout = logging.StreamHandler(sys.stdout)
        if log_format == "json":
            stdout.setFormatter(JSONFormatter(service_name=service_name))
        else:
            stdout.setFormatter(ConsoleFormatter(service_name=service_name))
        handlers: list[logging.Handler] = [stdout]

        if log_dir:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            # The file is always JSON so it can be parsed by log shippers.
            log_file = RotatingFileHandler(
                directory / f"{service_name}.log",
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
            log_file.setFormatter(JSONFormatter(service_name=service_name))
            handlers.append(log_file)

        context_filter = DiagnosticContextFilter()
        for handler in handlers:
            handler.setLevel(level)
            handler.addFilter(context_filter)
        return handlers

    @classmethod
    def get_logger(cls, name: str) -> StructuredLogger:
        return StructuredLogger(name)

    @classmethod
    def reset(cls) -> None:
        """Remove installed handlers (for testing)."""
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.propagate = True
        cls._initialized = False
        cls._format = "json"
        cls._level = logging.INFO


def initialize_logging(
    level: int = logging.INFO,
    log_format: str = "json",
    service_name: str = DEFAULT_SERVICE_NAME,
    log_dir: Optional[str] = None,
) -> None:
    """Initialize logging. Call once at startup.

    :param level: Log level
    :param log_format: "json" or "console"
    :param service_name: Service name for logs
    :param log_dir: Directory for the rotating log file, or None
    """
    LoggerFactory.initialize(
        level=level, log_format=log_format, service_name=service_name, log_dir=log_dir
    )


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger.

    :param name: Logger name (typically __name__)
    :returns: StructuredLogger instance
    """
    return LoggerFactory.get_logger(name)
