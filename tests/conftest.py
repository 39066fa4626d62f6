"""Shared pytest fixtures for Matchbox tests.

Every test gets its own file-backed SQLite database with the full schema,
and freshly wired services on top of it.
"""
import os

# Settings are read at import time by matchbox.main.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./matchbox-test.db")

import pytest
import pytest_asyncio

from matchbox.database import Base, build_engine, create_session_factory
from matchbox.models.profile import Profile
from matchbox.services.conversation_store import ConversationStore
from matchbox.services.match_engine import MatchEngine
from matchbox.services.notification_hub import NotificationHub
from matchbox.services.profile_directory import ProfileDirectory


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'matchbox.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def directory(session_factory):
    return ProfileDirectory(session_factory)


@pytest_asyncio.fixture
async def hub(session_factory):
    hub = NotificationHub(session_factory, buffer_size=4)
    yield hub
    await hub.shutdown()


@pytest.fixture
def engine(session_factory, directory, hub):
    return MatchEngine(session_factory, directory, notifier=hub)


@pytest.fixture
def store(session_factory, directory, hub):
    return ConversationStore(session_factory, directory, notifier=hub)


@pytest.fixture
def make_profile(session_factory):
    """Insert a profile owned by ``user_id``; the profile id is ``p-<user_id>``."""

    async def _make(user_id, name=None, **attrs):
        profile = Profile(
            id=f"p-{user_id}",
            user_id=user_id,
            name=name or user_id.upper(),
            **attrs,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(profile)
        return profile

    return _make


@pytest_asyncio.fixture
async def profiles(make_profile):
    """Three users, u1..u3, each with one profile."""
    return {
        uid: await make_profile(uid, name=name)
        for uid, name in (("u1", "Ada"), ("u2", "Grace"), ("u3", "Linus"))
    }


@pytest_asyncio.fixture
async def matched(engine, profiles):
    """u1 and u2 like each other; returns their match."""
    await engine.like("u1", "p-u2")
    return await engine.like("u2", "p-u1")
