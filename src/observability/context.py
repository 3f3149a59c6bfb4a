# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""
Mapped diagnostic context (MDC) backed by ContextVars.

This module provides the per-unit-of-work key/value store that every log line
is enriched with. A ContextVar is task-local under asyncio and thread-local for
plain worker threads, so each inbound request (or explicitly propagated
background task) sees only its own entries.

Entries are stored copy-on-write: each mutation installs a fresh mapping,
which keeps child tasks that inherit the context from writing into the
parent's entries.

Usage:
    ctx = DiagnosticContextManager.instance()
    ctx.put("operation", "export")
    with ctx.scoped_value("reportType", "daily"):
        logger.info("Generating report")
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Optional, Protocol, TypeVar

from src.constants import (
    BUSINESS_SCOPED_KEYS,
    OPERATION,
    REQUEST_ID,
    TRANSACTION_ID,
    TRANSACTION_ID_LENGTH,
    USER_ID,
)

T = TypeVar("T")

_EMPTY: Mapping[str, str] = MappingProxyType({})


@dataclass(frozen=True)
class ContextSnapshot:
    """
    Immutable point-in-time copy of the diagnostic context.

    Used to carry context across an execution-unit boundary, e.g. from a
    request handler to a worker thread. The two copies evolve independently.
    """

    entries: Mapping[str, str] = field(default_factory=lambda: _EMPTY)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def get(self, key: str) -> Optional[str]:
        """Get a single entry.

        :param key: Context key
        :type key: str
        :returns: Value or None when absent
        :rtype: Optional[str]
        """
        return self.entries.get(key)

    def to_dict(self) -> dict[str, str]:
        """Convert to a mutable dictionary (a fresh copy).

        :returns: Dictionary of all entries
        :rtype: dict[str, str]
        """
        return dict(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries


class ContextStore(Protocol):
    """Protocol for context stores - enables testing and alternative implementations."""

    def get_entries(self) -> Mapping[str, str]:
        """Get the current entries (read-only)."""
        ...

    def set_entries(self, entries: Mapping[str, str]) -> Token:
        """Replace all entries, returning token for restoration."""
        ...

    def reset(self, token: Token) -> None:
        """Reset entries to previous state using token."""
        ...


class ContextVarStore:
    """
    Context store using Python's ContextVar.

    This is the production implementation. ContextVars are:
    - Thread-isolated (each worker thread has its own context)
    - Async-safe (each asyncio task runs in a copy of its creator's context)
    """

    def __init__(self) -> None:
        """Initialize with empty context."""
        self._var: ContextVar[Mapping[str, str]] = ContextVar(
            "diagnostic_context",
            default=_EMPTY,
        )

    def get_entries(self) -> Mapping[str, str]:
        """Get current entries.

        :returns: Read-only mapping of current entries
        :rtype: Mapping[str, str]
        """
        return self._var.get()

    def set_entries(self, entries: Mapping[str, str]) -> Token:
        """Replace current entries with a read-only copy of ``entries``.

        :param entries: New entries
        :type entries: Mapping[str, str]
        :returns: Token for resetting to previous state
        :rtype: Token
        """
        return self._var.set(MappingProxyType(dict(entries)) if entries else _EMPTY)

    def reset(self, token: Token) -> None:
        """Reset entries to previous state using token.

        :param token: Token from previous set_entries call
        :type token: Token
        """
        self._var.reset(token)


def _require_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f"Context key must be a string, got {type(key).__name__}")
    return key


def _require_callable(body: Any) -> None:
    if not callable(body):
        raise TypeError(f"Scoped body must be callable, got {type(body).__name__}")


class DiagnosticContextManager:
    """
    Singleton manager for the diagnostic context.

    Provides the high-level API (well-known fields, transaction ids, scoped
    mutation, snapshots) while encapsulating the underlying store.

    Usage:
        ctx = DiagnosticContextManager.instance()
        ctx.put("userId", "jane.smith")
        print(ctx.get("userId"))
    """

    _instance: Optional["DiagnosticContextManager"] = None
    _store: Optional[ContextStore] = None

    def __new__(cls) -> "DiagnosticContextManager":
        """Ensure singleton instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._store = ContextVarStore()
        return cls._instance

    @classmethod
    def instance(cls) -> "DiagnosticContextManager":
        """Get singleton instance.

        :returns: Singleton DiagnosticContextManager
        :rtype: DiagnosticContextManager
        """
        return cls()

    @property
    def _ctx_store(self) -> ContextStore:
        assert self._store is not None, "DiagnosticContextManager not initialized"
        return self._store

    def get(self, key: str) -> Optional[str]:
        """Get a context value.

        Absence is a normal, observable state and never raises.

        :param key: Context key
        :type key: str
        :returns: Value or None when absent
        :rtype: Optional[str]
        """
        return self._ctx_store.get_entries().get(key)

    def put(self, key: str, value: str) -> None:
        """Set a context value, overwriting any previous one.

        :param key: Context key
        :type key: str
        :param value: Context value
        :type value: str
        """
        _require_key(key)
        entries = dict(self._ctx_store.get_entries())
        entries[key] = value
        self._ctx_store.set_entries(entries)

    def remove(self, key: str) -> None:
        """Remove a context value. No-op when absent.

        :param key: Context key
        :type key: str
        """
        current = self._ctx_store.get_entries()
        if key not in current:
            return
        entries = dict(current)
        del entries[key]
        self._ctx_store.set_entries(entries)

    @property
    def request_id(self) -> Optional[str]:
        """Get current request ID."""
        return self.get(REQUEST_ID)

    @property
    def user_id(self) -> Optional[str]:
        """Get current user ID."""
        return self.get(USER_ID)

    @property
    def transaction_id(self) -> Optional[str]:
        """Get current transaction ID."""
        return self.get(TRANSACTION_ID)

    @property
    def operation(self) -> Optional[str]:
        """Get current business operation."""
        return self.get(OPERATION)

    def set_transaction_id(self, value: str) -> None:
        """Set the business transaction ID.

        :param value: Transaction ID
        :type value: str
        """
        self.put(TRANSACTION_ID, value)

    def generate_and_set_transaction_id(self) -> str:
        """Generate a short transaction ID and make it the active one.

        The ID is the first 8 characters of a random UUID: a human-scannable
        correlation aid, not a uniqueness guarantee.

        :returns: The transaction ID that was set
        :rtype: str
        """
        transaction_id = str(uuid.uuid4())[:TRANSACTION_ID_LENGTH]
        self.set_transaction_id(transaction_id)
        return transaction_id

    def set_operation(self, value: str) -> None:
        """Set the business operation label.

        :param value: Operation name
        :type value: str
        """
        self.put(OPERATION, value)

    def clear_business_context(self) -> None:
        """Remove transactionId and operation, leaving request-scoped keys."""
        current = self._ctx_store.get_entries()
        if not any(key in current for key in BUSINESS_SCOPED_KEYS):
            return
        self._ctx_store.set_entries(
            {k: v for k, v in current.items() if k not in BUSINESS_SCOPED_KEYS}
        )

    @contextmanager
    def scoped_value(self, key: str, value: str) -> Iterator[None]:
        """Temporarily set one key, restoring its prior value on exit.

        :param key: Context key
        :type key: str
        :param value: Value for the duration of the block
        :type value: str
        """
        with ContextScope({key: value}, manager=self):
            yield

    @contextmanager
    def scoped_values(self, values: Mapping[str, str]) -> Iterator[None]:
        """Temporarily set several keys, restoring each one on exit.

        Restore is per key: every key in ``values`` gets its prior value back
        (or is removed when it had none). Keys the block writes outside
        ``values`` are kept.

        :param values: Keys and values for the duration of the block
        :type values: Mapping[str, str]
        """
        with ContextScope(values, manager=self):
            yield

    def with_scoped_value(self, key: str, value: str, body: Callable[[], T]) -> T:
        """Run ``body`` with one key temporarily set.

        :param key: Context key
        :param value: Temporary value
        :param body: Zero-argument callable
        :returns: Result of ``body``
        :raises TypeError: If ``body`` is not callable
        """
        _require_callable(body)
        with self.scoped_value(key, value):
            return body()

    def with_scoped_values(self, values: Mapping[str, str], body: Callable[[], T]) -> T:
        """Run ``body`` with several keys temporarily set.

        :param values: Temporary keys and values
        :param body: Zero-argument callable
        :returns: Result of ``body``
        :raises TypeError: If ``body`` is not callable
        """
        _require_callable(body)
        with self.scoped_values(values):
            return body()

    def snapshot(self) -> Optional[ContextSnapshot]:
        """Capture an immutable copy of the current context.

        :returns: Snapshot, or None when the context is empty
        :rtype: Optional[ContextSnapshot]
        """
        entries = self._ctx_store.get_entries()
        if not entries:
            return None
        return ContextSnapshot(entries)

    def get_all(self) -> dict[str, str]:
        """Get all context values as a fresh dictionary.

        :returns: Dictionary with all context values (empty when none)
        :rtype: dict[str, str]
        """
        return dict(self._ctx_store.get_entries())

    def install(self, snapshot: Optional[ContextSnapshot]) -> None:
        """Replace the current context with the contents of a snapshot.

        :param snapshot: Snapshot to install; None installs an empty context
        :type snapshot: Optional[ContextSnapshot]
        """
        self._ctx_store.set_entries(snapshot.entries if snapshot else _EMPTY)

    def clear(self) -> None:
        """Clear all context values."""
        self._ctx_store.set_entries(_EMPTY)

    def log_current_context(self) -> None:
        """Log the current context at debug level."""
        from src.observability.logger import get_logger

        logger = get_logger(__name__)
        entries = self.get_all()
        if entries:
            logger.debug(f"Current context: {entries}")
        else:
            logger.debug("Context is empty")


class ContextScope:
    """
    Context manager for scoped context mutation.

    Sets the given keys on entry and, on exit (normal or exceptional),
    restores each key's prior value or removes it if it had none. Nested or
    overlapping scopes on different keys compose correctly because only the
    scope's own keys are touched on exit.

    Example:
        with ContextScope({"module": "reporting", "format": "PDF"}):
            logger.info("Generating report")
    """

    def __init__(
        self,
        values: Mapping[str, str],
        manager: Optional[DiagnosticContextManager] = None,
    ) -> None:
        """Initialize scope with context values.

        :param values: Keys and values to set for the scope
        :param manager: Context manager (defaults to the singleton)
        """
        for key in values:
            _require_key(key)
        self._values = dict(values)
        self._manager = manager or DiagnosticContextManager.instance()
        self._saved: dict[str, Optional[str]] = {}

    def __enter__(self) -> "ContextScope":
        """Enter scope and set context values."""
        self._saved = {key: self._manager.get(key) for key in self._values}
        for key, value in self._values.items():
            self._manager.put(key, value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit scope and restore previous values."""
        for key, previous in self._saved.items():
            if previous is None:
                self._manager.remove(key)
            else:
                self._manager.put(key, previous)
        self._saved = {}


def get(key: str) -> Optional[str]:
    """Get a context value."""
    return DiagnosticContextManager.instance().get(key)


def put(key: str, value: str) -> None:
    """Set a context value."""
    DiagnosticContextManager.instance().put(key, value)


def get_request_id() -> Optional[str]:
    """Get current request ID."""
    return DiagnosticContextManager.instance().request_id


def get_user_id() -> Optional[str]:
    """Get current user ID."""
    return DiagnosticContextManager.instance().user_id


def generate_and_set_transaction_id() -> str:
    """Generate and set a transaction ID."""
    return DiagnosticContextManager.instance().generate_and_set_transaction_id()


def set_operation(value: str) -> None:
    """Set business operation."""
    DiagnosticContextManager.instance().set_operation(value)


def clear_business_context() -> None:
    """Clear transactionId and operation."""
    DiagnosticContextManager.instance().clear_business_context()


def snapshot() -> Optional[ContextSnapshot]:
    """Capture the current context."""
    return DiagnosticContextManager.instance().snapshot()


def clear_context() -> None:
    """Clear all context."""
    DiagnosticContextManager.instance().clear()
