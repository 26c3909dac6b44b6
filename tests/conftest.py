"""Pytest configuration and shared fixtures for tests."""

import os
from datetime import date, timedelta

import pytest

# In-memory database and cheap hashing for all tests
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sleep_journal.config import SIGNIN_MAX_ATTEMPTS, SIGNIN_WINDOW_SECONDS  # noqa: E402
from sleep_journal.database import Base, create_db_engine, get_db, init_db  # noqa: E402
from sleep_journal.entries import SleepEntry  # noqa: E402
from sleep_journal.rate_limit import RateLimiter  # noqa: E402

TEST_PASSWORD = "Secreto123"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def make_entries(ratings: list[int], start: date = date(2024, 1, 1)) -> list[SleepEntry]:
    """One entry per consecutive day starting at `start`, oldest first."""
    return [
        SleepEntry(date=start + timedelta(days=i), rating=rating)
        for i, rating in enumerate(ratings)
    ]


def registration_payload(email: str = "ana@example.com", **overrides) -> dict:
    payload = {
        "name": "Ana García",
        "email": email,
        "password": TEST_PASSWORD,
        "age": 34,
        "city": "Madrid",
        "country": "España",
        "gender": "Femenino",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def sample_entries() -> list[SleepEntry]:
    """Two weeks of varied entries, oldest first."""
    return make_entries([7, 6, 8, 5, 7, 9, 8, 6, 7, 8, 4, 7, 8, 9])


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database shared across threads."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(SIGNIN_MAX_ATTEMPTS, SIGNIN_WINDOW_SECONDS)


@pytest.fixture
def client(session_factory, rate_limiter):
    """TestClient whose requests run against the in-memory test database."""
    from sleep_journal.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        # Replace the limiter created by the lifespan handler
        app.state.rate_limiter = rate_limiter
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in_client(client):
    """Client with a registered user and an active session cookie."""
    response = client.post("/auth/register", json=registration_payload())
    assert response.status_code == 200
    return client
