# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""
Unit tests for context propagation to background work.
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.config import Settings
from src.constants import REQUEST_ID
from src.observability.context import DiagnosticContextManager
from src.observability.exceptions import ExecutorCapacityError
from src.observability.executor import (
    ContextAwareExecutor,
    run_with_context,
    wrap_with_context,
)

TIMEOUT = 5


def _read_request_id():
    return (
        DiagnosticContextManager.instance().get(REQUEST_ID),
        threading.current_thread().name,
    )


def _read_snapshot():
    return DiagnosticContextManager.instance().snapshot()


class TestWrapWithContext:
    """
    Test class for the task wrapper.
    """

    def test_rejects_non_callable(self):
        """
        Wrapping something that is not callable is a precondition violation.
        """
        with pytest.raises(TypeError):
            wrap_with_context("not callable")

    def test_installs_snapshot_and_clears_after(self, context_manager):
        """
        The wrapped callable sees the captured context and clears it afterwards.
        """
        context_manager.put(REQUEST_ID, "R1")
        task = wrap_with_context(lambda: context_manager.get(REQUEST_ID))
        context_manager.put(REQUEST_ID, "R2")

        assert task() == "R1"
        assert context_manager.snapshot() is None

    def test_passes_arguments(self):
        """
        Positional and keyword arguments reach the wrapped function.
        """
        task = wrap_with_context(lambda a, b=0: a + b, 2, b=3)
        assert task() == 5


class TestContextAwareExecutor:
    """
    Test class for the context-aware executor.
    """

    def test_context_reaches_worker_thread(self, context_manager, executor):
        """
        A task reads the submitter's requestId on a different thread.
        """
        context_manager.put(REQUEST_ID, "R1")
        request_id, thread_name = executor.submit(_read_request_id).result(timeout=TIMEOUT)

        assert request_id == "R1"
        assert thread_name.startswith("test-async-")
        assert thread_name != threading.current_thread().name

    def test_worker_context_empty_after_task(self, context_manager):
        """
        After a task completes its worker thread holds no context.
        """
        pool = ContextAwareExecutor(core_pool_size=1, max_pool_size=1, queue_capacity=2)
        try:
            context_manager.put(REQUEST_ID, "R1")
            context_manager.put("extra", "value")
            assert pool.submit(_read_request_id).result(timeout=TIMEOUT)[0] == "R1"

            context_manager.clear()
            assert pool.submit(_read_snapshot).result(timeout=TIMEOUT) is None
        finally:
            pool.shutdown()

    def test_snapshot_taken_at_submission(self, context_manager, executor):
        """
        Changes made by the submitter after submitting are not seen by the task.
        """
        release = threading.Event()
        context_manager.put(REQUEST_ID, "R1")

        def blocked():
            release.wait(TIMEOUT)
            return DiagnosticContextManager.instance().get(REQUEST_ID)

        future = executor.submit(blocked)
        context_manager.put(REQUEST_ID, "R2")
        release.set()

        assert future.result(timeout=TIMEOUT) == "R1"
        assert context_manager.get(REQUEST_ID) == "R2"

    def test_task_writes_do_not_reach_submitter(self, context_manager, executor):
        """
        The task works on a copy of the submitter's context.
        """
        context_manager.put(REQUEST_ID, "R1")

        def mutate():
            manager = DiagnosticContextManager.instance()
            manager.put("taskKey", "x")
            manager.put(REQUEST_ID, "changed")

        executor.submit(mutate).result(timeout=TIMEOUT)
        assert context_manager.get_all() == {REQUEST_ID: "R1"}

    def test_empty_submitter_context(self, executor):
        """
        A submitter without context runs the task with no context installed.
        """
        assert executor.submit(_read_snapshot).result(timeout=TIMEOUT) is None

    def test_task_exception_surfaces_through_future(self, context_manager):
        """
        A failing task reports through its future and still tears down.
        """
        pool = ContextAwareExecutor(core_pool_size=1, max_pool_size=1, queue_capacity=2)
        try:
            context_manager.put(REQUEST_ID, "R1")

            def fail():
                raise ValueError("task failed")

            future = pool.submit(fail)
            with pytest.raises(ValueError, match="task failed"):
                future.result(timeout=TIMEOUT)

            context_manager.clear()
            assert pool.submit(_read_snapshot).result(timeout=TIMEOUT) is None
        finally:
            pool.shutdown()

    def test_caller_runs_when_saturated(self, context_manager):
        """
        A saturated pool runs the task on the caller without touching its context.
        """
        pool = ContextAwareExecutor(core_pool_size=1, max_pool_size=1, queue_capacity=0)
        release = threading.Event()
        try:
            context_manager.put(REQUEST_ID, "R1")
            blocker = pool.submit(release.wait, TIMEOUT)

            future = pool.submit(_read_request_id)
            assert future.done()
            request_id, thread_name = future.result()
            assert request_id == "R1"
            assert thread_name == threading.current_thread().name
            assert context_manager.get_all() == {REQUEST_ID: "R1"}
        finally:
            release.set()
            blocker.result(timeout=TIMEOUT)
            pool.shutdown()

    def test_caller_runs_exception_surfaces_through_future(self, context_manager):
        """
        Failures of caller-run tasks are delivered through the future.
        """
        pool = ContextAwareExecutor(core_pool_size=1, max_pool_size=1, queue_capacity=0)
        release = threading.Event()
        try:
            blocker = pool.submit(release.wait, TIMEOUT)

            def fail():
                raise KeyError("missing")

            future = pool.submit(fail)
            with pytest.raises(KeyError):
                future.result()
        finally:
            release.set()
            blocker.result(timeout=TIMEOUT)
            pool.shutdown()

    def test_abort_policy_rejects_when_saturated(self):
        """
        The abort policy surfaces a capacity error instead of running the task.
        """
        pool = ContextAwareExecutor(
            core_pool_size=1, max_pool_size=1, queue_capacity=0, rejection_policy="abort"
        )
        release = threading.Event()
        try:
            blocker = pool.submit(release.wait, TIMEOUT)
            with pytest.raises(ExecutorCapacityError) as exc_info:
                pool.submit(_read_snapshot)
            assert exc_info.value.max_pool_size == 1
            assert exc_info.value.queue_capacity == 0
        finally:
            release.set()
            blocker.result(timeout=TIMEOUT)
            pool.shutdown()

    def test_backlog_served_by_core_workers(self):
        """
        While the backlog has room, tasks wait for the core worker instead of
        starting new threads.
        """
        pool = ContextAwareExecutor(core_pool_size=1, max_pool_size=4, queue_capacity=10)
        release = threading.Event()

        def blocked():
            release.wait(TIMEOUT)
            return threading.current_thread().name

        try:
            futures = [pool.submit(blocked) for _ in range(4)]
            release.set()
            names = {future.result(timeout=TIMEOUT) for future in futures}
            assert len(names) == 1
            assert "burst" not in names.pop()
        finally:
            release.set()
            pool.shutdown()

    def test_burst_workers_start_when_backlog_full(self, context_manager):
        """
        Extra workers are added up to the maximum once the backlog is full,
        then the rejection policy applies.
        """
        pool = ContextAwareExecutor(
            core_pool_size=1, max_pool_size=2, queue_capacity=1, thread_name_prefix="sized-"
        )
        release = threading.Event()
        context_manager.put(REQUEST_ID, "R1")

        def blocked():
            release.wait(TIMEOUT)
            return _read_request_id()

        try:
            running_on_core = pool.submit(blocked)
            queued_on_core = pool.submit(blocked)
            running_on_burst = pool.submit(blocked)

            caller_run = pool.submit(_read_request_id)
            assert caller_run.result()[1] == threading.current_thread().name

            release.set()
            results = [
                future.result(timeout=TIMEOUT)
                for future in (running_on_core, queued_on_core, running_on_burst)
            ]
            assert all(request_id == "R1" for request_id, _ in results)
            names = {thread_name for _, thread_name in results}
            assert len(names) == 2
            assert all(name.startswith("sized-") for name in names)
            assert results[0][1] == results[1][1]
            assert results[2][1].startswith("sized-burst")
        finally:
            release.set()
            pool.shutdown()

    def test_submit_after_shutdown(self):
        """
        A shut-down executor refuses new work.
        """
        pool = ContextAwareExecutor(core_pool_size=1, max_pool_size=1, queue_capacity=0)
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(_read_snapshot)

    def test_submit_rejects_non_callable(self, executor):
        """
        Submitting a non-callable is a precondition violation.
        """
        with pytest.raises(TypeError):
            executor.submit(None)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"core_pool_size": 0},
            {"core_pool_size": 5, "max_pool_size": 2},
            {"queue_capacity": -1},
            {"rejection_policy": "discard"},
        ],
    )
    def test_invalid_configuration(self, kwargs):
        """
        Invalid sizes or policies are rejected at construction.
        """
        with pytest.raises(ValueError):
            ContextAwareExecutor(**kwargs)

    def test_from_settings(self):
        """
        Pool parameters are taken from settings.
        """
        settings = Settings(
            async_core_pool_size=2,
            async_max_pool_size=3,
            async_queue_capacity=7,
            async_thread_name_prefix="cfg-",
            async_rejection_policy="abort",
        )
        pool = ContextAwareExecutor.from_settings(settings)
        try:
            assert pool.core_pool_size == 2
            assert pool.max_pool_size == 3
            assert pool.queue_capacity == 7
            assert pool.thread_name_prefix == "cfg-"
            assert pool.rejection_policy == "abort"
        finally:
            pool.shutdown()


class TestRunWithContext:
    """
    Test class for awaiting context-propagated work from async code.
    """

    def test_with_context_aware_executor(self, executor):
        """
        The coroutine's context reaches the worker thread.
        """

        async def scenario():
            DiagnosticContextManager.instance().put(REQUEST_ID, "async-R1")
            return await run_with_context(executor, _read_request_id)

        request_id, thread_name = asyncio.run(scenario())
        assert request_id == "async-R1"
        assert thread_name.startswith("test-async-")

    def test_with_plain_executor(self):
        """
        A plain executor gets the task wrapped as well.
        """
        pool = ThreadPoolExecutor(max_workers=1)
        try:

            async def scenario():
                DiagnosticContextManager.instance().put(REQUEST_ID, "plain-R1")
                first = await run_with_context(pool, _read_request_id)
                leftover = await asyncio.wrap_future(pool.submit(_read_snapshot))
                return first, leftover

            (request_id, _), leftover = asyncio.run(scenario())
            assert request_id == "plain-R1"
            assert leftover is None
        finally:
            pool.shutdown()
