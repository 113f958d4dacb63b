"""
Pytest configuration and shared fixtures for Twofactor tests.

This module provides common test fixtures for:
- In-memory databases and sessions
- Users with known passwords
- A controllable clock
- An API client with dependency overrides
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from twofactor.auth.dependencies import get_clock
from twofactor.auth.jwt_handler import create_access_token
from twofactor.auth.models import Event, User
from twofactor.config import Settings, get_settings
from twofactor.database import get_db, init_db
from twofactor.main import app

# 2023-11-14 22:13:45 UTC, in the middle of time-step 56666667
NOW = 1_700_000_025
PASSWORD = "correct horse battery staple"


def totp_code(secret: str, timestamp: float) -> str:
    """Reference code from pyotp's TOTP, independent of the service code path"""
    return pyotp.TOTP(secret).at(datetime.fromtimestamp(timestamp, tz=timezone.utc))


def events_of(db, event_type):
    return db.query(Event).filter(Event.event_type == int(event_type)).all()


class FakeClock:
    """Callable clock that tests move by hand"""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# ============================================
# Database Fixtures
# ============================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture(scope="session")
def password_hash():
    """Bcrypt is slow, hash the shared test password once"""
    return User.hash_password(PASSWORD)


@pytest.fixture
def make_user(db, password_hash):
    def _make_user(username: str = "alice", email: str = None) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            hashed_password=password_hash,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


# ============================================
# Settings and Clock Fixtures
# ============================================

@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret_key="test-secret-key",
        smtp_config_path="/nonexistent/smtp_config.json",
    )


@pytest.fixture
def clock():
    return FakeClock()


# ============================================
# API Fixtures
# ============================================

@pytest.fixture
def client(db, settings, clock):
    """Test client sharing the test session, settings and clock"""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user, settings):
    token = create_access_token(data={"sub": user.username}, settings=settings)
    return {"Authorization": f"Bearer {token}"}
