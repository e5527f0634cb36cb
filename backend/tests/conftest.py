"""Shared fixtures: a file-backed SQLite database, a temp storage root and the app."""
import os

# Must be set before filevault.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SMTP_HOST"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from filevault.config import Settings
from filevault.database import get_db
from filevault.models import Base
from filevault.models.user import User
from filevault.routes.deps import get_notifier, get_settings, get_storage
from filevault.services.file_storage import FileStorageService
from filevault.services.notifier import OwnerNotifier


class RecordingNotifier(OwnerNotifier):
    """Keeps every event instead of sending anything."""

    def __init__(self):
        self.events = []

    async def notify(self, event):
        self.events.append(event)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return FileStorageService(tmp_path / "files", "/files")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(email="a@b.com", first_name="Ada", last_name="Byron"):
        async with session_factory() as session:
            user = User(first_name=first_name, last_name=last_name, email=email, files=[])
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user
    return _make_user


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        FILE_STORAGE_PATH=str(tmp_path / "files"),
        MAX_UPLOAD_SIZE=1024 * 1024,
        SMTP_HOST="",
    )


@pytest.fixture
def app(session_factory, storage, notifier, test_settings):
    from filevault.main import app as fastapi_app

    async def _get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    fastapi_app.dependency_overrides[get_settings] = lambda: test_settings
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client
