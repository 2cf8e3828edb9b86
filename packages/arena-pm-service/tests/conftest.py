"""Service test fixtures with in-memory fake repos."""

from __future__ import annotations

import pytest
from _helpers import FakeNotifier, InMemoryStore, make_test_app
from fastapi.testclient import TestClient


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def app(store, notifier):
    """App wired to the shared store; no database needed."""
    return make_test_app(store=store, notifier=notifier)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
