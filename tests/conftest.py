import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone

import pytest

# Settings are read at import time, so the environment must be ready first
_TMP_DIR = tempfile.mkdtemp(prefix="travel-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'api.db')}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["TASK_ALWAYS_EAGER"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from fakes import (  # noqa: E402
    FixedClock,
    InMemoryTravelStore,
    InMemoryUserStore,
    RecordingNotifier,
)
from travel.database import init_db  # noqa: E402
from travel.entities import User, UserRole  # noqa: E402
from travel.migrate import upgrade  # noqa: E402
from travel.services import TravelWorkflow  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def client():
    from travel.api import app

    # the app leaves the schema to the migrations
    upgrade()
    return TestClient(app)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def users():
    return InMemoryUserStore()


@pytest.fixture
def travels(users):
    return InMemoryTravelStore(users)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def workflow(travels, users, notifier, clock):
    return TravelWorkflow(travels, users, notifier, clock=clock)


def make_user(store, role=UserRole.COMMON, name="Joana Silva"):
    return store.create(
        User(
            id=uuid.uuid4(),
            name=name,
            email=f"{uuid.uuid4().hex}@example.com",
            password_hash="not-a-real-hash",
            role=role,
            created_at=NOW,
        )
    )


@pytest.fixture
def owner(users):
    return make_user(users)


@pytest.fixture
def admin(users):
    return make_user(users, role=UserRole.ADMIN, name="Ana Admin")


@pytest.fixture
def session_local(tmp_path):
    """Provide an isolated file-backed database for each test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'store.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()


def days_from_now(days, now=NOW):
    return now + timedelta(days=days)
