# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Context propagation for background work.

This module provides the pieces that let deferred work run with the
diagnostic context of whoever submitted it:

- wrap_with_context: snapshot the submitter's context and re-install it
  around the work on whichever thread runs it
- ContextAwareExecutor: a core/queue/max bounded thread pool applying that
  wrapper to every task, with a caller-runs or abort policy when saturated
- run_with_context: await such a task from async code
"""

from __future__ import annotations

import asyncio
import contextvars
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

from src.config import Settings
from src.observability.context import DiagnosticContextManager
from src.observability.events import LogLevel, create_task_event
from src.observability.exceptions import ExecutorCapacityError
from src.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CALLER_RUNS = "caller_runs"
ABORT = "abort"
BURST_SUFFIX = "burst"


def _task_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)


def wrap_with_context(fn: Callable[..., T], *args: Any, **kwargs: Any) -> Callable[[], T]:
    """Bind ``fn`` to a snapshot of the current diagnostic context.

    The snapshot is taken now, on the submitting thread. The returned
    callable installs it (when non-empty) before running ``fn`` and clears
    the context afterwards, whether ``fn`` returns or raises.

    :param fn: Work to run later
    :type fn: Callable[..., T]
    :param args: Positional arguments for ``fn``
    :param kwargs: Keyword arguments for ``fn``
    :returns: Zero-argument callable running ``fn`` in the captured context
    :rtype: Callable[[], T]
    :raises TypeError: If ``fn`` is not callable
    """
    if not callable(fn):
        raise TypeError(f"Task must be callable, got {type(fn).__name__}")

    manager = DiagnosticContextManager.instance()
    captured = manager.snapshot()
    name = _task_name(fn)

    def run_in_context() -> T:
        if captured is not None:
            manager.install(captured)
        start_time = time.perf_counter()
        logger.event(
            create_task_event(
                "task_start",
                task_name=name,
                thread_name=threading.current_thread().name,
                context_keys=len(captured) if captured else 0,
            )
        )
        error: Optional[BaseException] = None
        try:
            return fn(*args, **kwargs)
        except BaseException as exc:
            error = exc
            raise
        finally:
            logger.event(
                create_task_event(
                    "task_end",
                    level=LogLevel.DEBUG if error is None else LogLevel.ERROR,
                    task_name=name,
                    status="success" if error is None else "failed",
                    error=repr(error) if error is not None else None,
                    duration_ms=int((time.perf_counter() - start_time) * 1000),
                )
            )
            manager.clear()

    run_in_context.__qualname__ = f"context_task[{name}]"
    return run_in_context


class _Tier:
    """A fixed-size ThreadPoolExecutor plus the slots that bound its in-flight tasks."""

    def __init__(self, workers: int, capacity: int, thread_name_prefix: str) -> None:
        self.pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=thread_name_prefix)
        self.slots = threading.BoundedSemaphore(capacity)

    def try_submit(self, task: Callable[[], T]) -> "Optional[Future[T]]":
        if not self.slots.acquire(blocking=False):
            return None
        try:
            future = self.pool.submit(task)
        except BaseException:
            self.slots.release()
            raise
        future.add_done_callback(self._release_slot)
        return future

    def _release_slot(self, _future: Future) -> None:
        self.slots.release()


class ContextAwareExecutor(Executor):
    """Bounded thread pool that propagates the diagnostic context to tasks.

    Every submitted callable is wrapped with :func:`wrap_with_context`.
    Sizing follows the classic core/queue/max scheme:

    - up to ``core_pool_size`` workers run tasks and up to ``queue_capacity``
      more tasks wait for them
    - once that backlog is full, extra burst workers are started, up to
      ``max_pool_size`` workers in total; burst workers never queue
    - beyond that the rejection policy applies

    Rejection policies:

    - ``caller_runs``: the task runs on the submitting thread, inside a fresh
      ``contextvars.Context`` so the submitter's own context is untouched,
      and an already-completed future is returned
    - ``abort``: :class:`ExecutorCapacityError` is raised
    """

    def __init__(
        self,
        core_pool_size: int = 5,
        max_pool_size: int = 10,
        queue_capacity: int = 100,
        thread_name_prefix: str = "mdc-async-",
        rejection_policy: str = CALLER_RUNS,
    ) -> None:
        """Initialize the executor.

        :param core_pool_size: Number of workers serving the backlog
        :type core_pool_size: int
        :param max_pool_size: Maximum number of worker threads
        :type max_pool_size: int
        :param queue_capacity: Tasks allowed to wait for a core worker
        :type queue_capacity: int
        :param thread_name_prefix: Prefix for worker thread names
        :type thread_name_prefix: str
        :param rejection_policy: "caller_runs" or "abort"
        :type rejection_policy: str
        :raises ValueError: If the sizes or the policy are invalid
        """
        if core_pool_size < 1 or max_pool_size < core_pool_size:
            raise ValueError(
                f"Invalid pool sizes: core={core_pool_size}, max={max_pool_size}"
            )
        if queue_capacity < 0:
            raise ValueError(f"queue_capacity must be >= 0, got {queue_capacity}")
        if rejection_policy not in (CALLER_RUNS, ABORT):
            raise ValueError(f"Unknown rejection policy: {rejection_policy}")

        self.core_pool_size = core_pool_size
        self.max_pool_size = max_pool_size
        self.queue_capacity = queue_capacity
        self.thread_name_prefix = thread_name_prefix
        self.rejection_policy = rejection_policy

        self._core = _Tier(core_pool_size, core_pool_size + queue_capacity, thread_name_prefix)
        burst_workers = max_pool_size - core_pool_size
        self._burst: Optional[_Tier] = (
            _Tier(burst_workers, burst_workers, f"{thread_name_prefix}{BURST_SUFFIX}")
            if burst_workers
            else None
        )
        self._shutdown = False
        self._lock = threading.Lock()

        logger.info(
            f"Context-aware executor configured with core pool size: {core_pool_size}, "
            f"max pool size: {max_pool_size}, queue capacity: {queue_capacity}"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContextAwareExecutor":
        """Create an executor from service settings.

        :param settings: Service settings
        :type settings: Settings
        :returns: Configured executor
        :rtype: ContextAwareExecutor
        """
        return cls(
            core_pool_size=settings.async_core_pool_size,
            max_pool_size=settings.async_max_pool_size,
            queue_capacity=settings.async_queue_capacity,
            thread_name_prefix=settings.async_thread_name_prefix,
            rejection_policy=settings.async_rejection_policy,
        )

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> "Future[T]":
        """Submit work to run with the submitter's diagnostic context.

        :param fn: Callable to execute
        :type fn: Callable[..., T]
        :returns: Future for the result; task exceptions surface through it
        :rtype: Future[T]
        :raises TypeError: If ``fn`` is not callable
        :raises RuntimeError: If the executor has been shut down
        :raises ExecutorCapacityError: If saturated under the abort policy
        """
        task = wrap_with_context(fn, *args, **kwargs)
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new tasks after shutdown")

        future = self._core.try_submit(task)
        if future is None and self._burst is not None:
            future = self._burst.try_submit(task)
        if future is None:
            return self._reject(task, _task_name(fn))
        return future

    def _reject(self, task: Callable[[], T], name: str) -> "Future[T]":
        if self.rejection_policy == ABORT:
            logger.event(create_task_event("task_rejected", level=LogLevel.WARNING, task_name=name))
            raise ExecutorCapacityError(self.max_pool_size, self.queue_capacity)

        logger.event(
            create_task_event("task_caller_runs", level=LogLevel.WARNING, task_name=name)
        )
        future: "Future[T]" = Future()
        future.set_running_or_notify_cancel()
        try:
            result = contextvars.Context().run(task)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future

    @property
    def running(self) -> bool:
        """Whether the executor still accepts tasks."""
        with self._lock:
            return not self._shutdown

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        """Stop accepting tasks and release the worker threads.

        :param wait: Block until running tasks complete
        :param cancel_futures: Cancel tasks still waiting in the backlog
        """
        with self._lock:
            self._shutdown = True
        for tier in (self._core, self._burst):
            if tier is not None:
                tier.pool.shutdown(wait=wait, cancel_futures=cancel_futures)
        logger.info("Context-aware executor shut down")


async def run_with_context(
    executor: Executor,
    fn: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run ``fn`` on ``executor`` and await its result from async code.

    Plain executors get ``fn`` wrapped with :func:`wrap_with_context`;
    a :class:`ContextAwareExecutor` wraps it itself.

    :param executor: Executor to run on
    :param fn: Callable to execute
    :returns: Result of ``fn``
    """
    if isinstance(executor, ContextAwareExecutor):
        future = executor.submit(fn, *args, **kwargs)
    else:
        future = executor.submit(wrap_with_context(fn, *args, **kwargs))
    return await asyncio.wrap_future(future)
