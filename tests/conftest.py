from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from helpers import (
    FakeDealMutator,
    FakeFieldUpdater,
    FakeNotifier,
    FakeTaskCreator,
    InMemoryStore,
    MutableClock,
)
from pipeline_automation.core.locks import KeyedLockManager
from pipeline_automation.main import app
from pipeline_automation.services.action_dispatcher import ActionDispatcher
from pipeline_automation.services.automation_engine import AutomationEngine

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def deal_mutator() -> FakeDealMutator:
    return FakeDealMutator()


@pytest.fixture
def task_creator() -> FakeTaskCreator:
    return FakeTaskCreator()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def field_updater() -> FakeFieldUpdater:
    return FakeFieldUpdater()


@pytest.fixture
def dispatcher(deal_mutator, task_creator, notifier, field_updater) -> ActionDispatcher:
    return ActionDispatcher(
        deal_mutator=deal_mutator,
        task_creator=task_creator,
        notifier=notifier,
        field_updater=field_updater,
        timeout_seconds=0.5,
    )


@pytest.fixture
def engine(store, dispatcher, clock) -> AutomationEngine:
    return AutomationEngine(
        store=store,
        dispatcher=dispatcher,
        lock_manager=KeyedLockManager(wait_seconds=1.0),
        clock=clock,
        log_append_backoff_seconds=0.0,
    )


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis_lock = MagicMock()
    redis_lock.acquire = AsyncMock(return_value=True)
    redis_lock.release = AsyncMock()
    redis_lock.reacquire = AsyncMock()
    # ``Redis.lock`` is synchronous and returns the lock object
    redis.lock = MagicMock(return_value=redis_lock)
    redis.blpop = AsyncMock(return_value=None)
    redis.ping = AsyncMock()
    return redis


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
