"""
Pytest configuration for RSVP tests
"""
import os
import sys
from pathlib import Path

import pytest

# Ensure rsvp is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

# Settings are read at import time, set the environment first
TEST_SECRET_KEY = "6b" * 32
os.environ["SECRET_COOKIE_KEY"] = TEST_SECRET_KEY
os.environ["ENVIRONMENT"] = "development"
os.environ["STORE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GUESTS_CSV_PATH"] = str(Path(__file__).parent / "missing_names.csv")
os.environ["API_KEY"] = "test-api-key"

from rsvp.core.config import Settings  # noqa: E402
from rsvp.core.cookies import SessionCodec  # noqa: E402
from rsvp.database import build_engine, build_session_factory, init_db  # noqa: E402
from rsvp.schemas.guest import GuestOut  # noqa: E402
from rsvp.services.guest_state import GuestStateMachine  # noqa: E402
from rsvp.services.guest_store import InMemoryGuestStore  # noqa: E402
from rsvp.services.sql_guest_store import SqlGuestStore  # noqa: E402


@pytest.fixture
def codec():
    return SessionCodec(bytes.fromhex(TEST_SECRET_KEY))


@pytest.fixture
def store():
    return InMemoryGuestStore()


@pytest.fixture
def machine(store, codec):
    return GuestStateMachine(store, codec)


@pytest.fixture
async def maria(store):
    """Guest who has been issued a code but not responded yet"""
    guest = GuestOut(id=1, name="Maria Lopez", code="Maria-1St")
    await store.add_guest(guest)
    return guest


@pytest.fixture
async def sql_store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'guests.db'}")
    await init_db(engine)
    yield SqlGuestStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def any_store(request, tmp_path):
    """Runs a test against every GuestStore implementation"""
    if request.param == "memory":
        yield InMemoryGuestStore()
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'guests.db'}")
    await init_db(engine)
    yield SqlGuestStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def test_settings():
    return Settings(
        environment="development",
        store_backend="memory",
        secret_cookie_key=TEST_SECRET_KEY,
        guests_csv_path=str(Path(__file__).parent / "missing_names.csv"),
        api_key="test-api-key",
        rate_limit_enabled=False,
        event_name="Test Wedding",
    )
