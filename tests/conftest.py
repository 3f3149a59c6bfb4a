# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""
Shared fixtures for the test suite.
"""

import os

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.observability import ContextAwareExecutor, DiagnosticContextManager


@pytest.fixture(autouse=True)
def context_manager():
    """
    Provide the context manager with an empty context before and after each test.

    :return: The DiagnosticContextManager singleton
    :rtype: DiagnosticContextManager
    """
    manager = DiagnosticContextManager.instance()
    manager.clear()
    yield manager
    manager.clear()


@pytest.fixture
def executor():
    """
    Provide a small context-aware executor, shut down after the test.

    :return: Executor with two workers and a short backlog
    :rtype: ContextAwareExecutor
    """
    pool = ContextAwareExecutor(
        core_pool_size=1,
        max_pool_size=2,
        queue_capacity=4,
        thread_name_prefix="test-async-",
    )
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def client():
    """
    Provide a TestClient with the application lifespan running.

    :return: TestClient bound to a freshly built app
    :rtype: TestClient
    """
    with TestClient(create_app()) as test_client:
        yield test_client
