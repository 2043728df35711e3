import os

# Settings require database credentials at import time
os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")
os.environ.setdefault("REALTIME_ENABLED", "false")

import uuid
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from app.db.base import Base
from app.models import User
from app.services.notification_service import NotificationService


@pytest.fixture
def mock_session():
    session = AsyncMock()

    # Setup execute result
    mock_result = MagicMock()
    # Ensure scalar_one_or_none returns a value, not a coroutine
    mock_result.scalar_one_or_none.return_value = None
    mock_result.scalars.return_value.all.return_value = []
    mock_result.scalars.return_value.first.return_value = None

    # Configure session.execute to return this result when awaited
    session.execute.side_effect = None
    session.execute.return_value = mock_result

    # Standard methods
    session.add = MagicMock()
    session.refresh = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()

    return session


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so that separate sessions share one database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier(session_factory):
    return NotificationService(session_factory=session_factory)


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def mock_publisher():
    publisher = MagicMock()
    publisher.publish = AsyncMock(return_value=True)
    return publisher


@pytest.fixture
def make_user(db_session):
    """Create and commit a directory user."""
    async def _make(name="user", **fields):
        user = User(
            id=uuid.uuid4(),
            username=f"{name}_{uuid.uuid4().hex[:8]}",
            name=name,
            followers=[],
            following=[],
            blocked_users=[],
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        return user
    return _make


@pytest.fixture
def patch_session_local(monkeypatch, session_factory):
    """Point every module that opens its own sessions at the test database."""
    targets = [
        "app.db.session.AsyncSessionLocal",
        "app.api.arcade.AsyncSessionLocal",
        "app.api.chat.AsyncSessionLocal",
        "app.api.admin.AsyncSessionLocal",
    ]
    for target in targets:
        monkeypatch.setattr(target, session_factory)
    return session_factory
