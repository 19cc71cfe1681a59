"""Shared fixtures for the profit-sync test suite."""

from datetime import datetime, timedelta, timezone

import pytest

from profit_sync.auth import AuthSession, AuthUser
from profit_sync.core import (
    ConflictResolutionPort,
    FixedChoiceResolver,
    LoggingNotifier,
)
from profit_sync.core.sync import SyncEngine
from profit_sync.database import DatabaseService, LocalStore
from profit_sync.remote import InMemoryRemoteStore
from profit_sync.utils.timestamps import to_iso

START = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
USER_ID = "user-1"


class FakeClock:
    """Manually advanced clock handed to engines and stores."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock starting at 2026-03-01 08:00 UTC."""
    return FakeClock()


@pytest.fixture
def db_service(tmp_path):
    """Create a temporary database service for testing."""
    service = DatabaseService(db_path=tmp_path / "local.db")
    yield service
    service.close()


@pytest.fixture
def local_store(db_service):
    """Local store over the temporary database."""
    return LocalStore(db_service)


@pytest.fixture
def remote(clock):
    """In-memory remote store stamping with the fake clock."""
    return InMemoryRemoteStore(clock=clock)


@pytest.fixture
def auth():
    """Signed-out auth session."""
    return AuthSession()


@pytest.fixture
def user():
    """Verified user."""
    return AuthUser(uid=USER_ID, email="tech@example.com", email_verified=True)


@pytest.fixture
def notifier():
    """Notifier recording every message."""
    return LoggingNotifier()


@pytest.fixture
def resolver():
    """Conflict port that keeps the cloud version."""
    return FixedChoiceResolver()


@pytest.fixture
def engine(local_store, remote, auth, notifier, resolver, clock):
    """Sync engine wired to the in-memory collaborators."""
    return SyncEngine(
        local_store,
        remote,
        auth,
        notifier,
        resolver,
        max_concurrent_uploads=2,
        clock=clock,
    )


@pytest.fixture
def make_entry():
    """Factory for daily entry documents."""

    def factory(date, points=10.0, modified_at=None, remote_updated_at=None, **extra):
        document = {"date": date, "points": points}
        if modified_at is not None:
            document["createdAt"] = to_iso(modified_at)
            document["modifiedAt"] = to_iso(modified_at)
        if remote_updated_at is not None:
            document["remoteUpdatedAt"] = to_iso(remote_updated_at)
        document.update(extra)
        return document

    return factory


class UndecidedResolver(ConflictResolutionPort):
    """Conflict port whose dialog is dismissed without an answer."""

    def __init__(self):
        self.asked = []

    async def choose(self, local, remote):
        self.asked.append(str(local.get("date") or local.get("name") or ""))
        return None
