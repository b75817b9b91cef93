"""
Pytest fixtures for pipeline tests.

Provides:
- In-memory SQLite database wired into pipeline.db.session
- Fake aio-pika channel / incoming messages for the broker layer
- Fake MessageChannel for consumers and producers
- Test settings
"""

from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import pipeline.db.session as db_session_module
from pipeline.db.models import Base
from shared.config import Settings


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest_asyncio.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def db_session_factory(async_engine, monkeypatch):
    """Session factory, also installed as the one get_db_session() uses."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    monkeypatch.setattr(db_session_module, "_session_factory", factory)
    return factory


@pytest_asyncio.fixture
async def db_session(db_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with db_session_factory() as session:
        yield session


# =============================================================================
# BROKER FIXTURES
# =============================================================================

class FakeQueueIterator:
    """Stands in for aio_pika's QueueIterator: yields the given messages, then stops."""

    def __init__(self, messages):
        self._messages = list(messages)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)


def make_fake_queue(name: str, messages=()):
    queue = MagicMock()
    queue.name = name
    queue.bind = AsyncMock()
    queue.iterator = MagicMock(side_effect=lambda: FakeQueueIterator(messages))
    queue.get = AsyncMock(return_value=None)
    queue.declaration_result = SimpleNamespace(message_count=len(messages))
    return queue


def make_fake_exchange(name: str):
    exchange = MagicMock()
    exchange.name = name
    exchange.publish = AsyncMock()
    return exchange


@pytest.fixture
def fake_queue():
    """Factory for fake aio_pika queues that deliver the given messages."""
    return make_fake_queue


@pytest.fixture
def amqp_channel():
    """Fake aio_pika channel recording every declaration."""
    ch = MagicMock()
    ch.is_closed = False
    ch.declared_queues = {}
    ch.declared_exchanges = {}

    async def declare_exchange(name, *args, **kwargs):
        exchange = make_fake_exchange(name)
        ch.declared_exchanges[name] = (exchange, args, kwargs)
        return exchange

    async def declare_queue(name, **kwargs):
        queue = make_fake_queue(name)
        ch.declared_queues[name] = (queue, kwargs)
        return queue

    ch.declare_exchange = AsyncMock(side_effect=declare_exchange)
    ch.declare_queue = AsyncMock(side_effect=declare_queue)
    ch.default_exchange = make_fake_exchange("")
    ch.get_queue = AsyncMock(side_effect=lambda name, ensure=True: make_fake_queue(name))
    return ch


@pytest.fixture
def incoming_message():
    """Factory for fake aio_pika incoming messages."""
    def _create(body: bytes = b"{}", delivery_tag: int = 1, redelivered: bool = False,
                routing_key: str = "analysis.filesize"):
        return SimpleNamespace(
            body=body,
            delivery_tag=delivery_tag,
            redelivered=redelivered,
            routing_key=routing_key,
            exchange="pipeline",
            ack=AsyncMock(),
            reject=AsyncMock(),
        )
    return _create


@pytest.fixture
def mock_channel():
    """Mock MessageChannel for consumers, producers and the runtime."""
    channel = AsyncMock()
    channel.publish = AsyncMock(return_value=None)
    channel.bind = AsyncMock()
    channel.ack = AsyncMock()
    channel.reject = AsyncMock()
    channel.consume = AsyncMock()
    return channel


@pytest.fixture
def mock_executor():
    executor = SimpleNamespace(execute=AsyncMock())
    return executor


# =============================================================================
# SETTINGS FIXTURE
# =============================================================================

@pytest.fixture
def test_settings(tmp_path):
    """Test settings with mock values."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        rabbitmq_host="localhost",
        default_exchange="pipeline",
        projects_file=str(tmp_path / "projects.yml"),
        pdepend_binary="/usr/local/bin/pdepend",
        pdepend_file_pattern="php",
        git_binary="git",
        checkout_path=str(tmp_path / "checkouts"),
        log_format="console",
    )
