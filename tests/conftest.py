"""
Shared test fixtures for all test modules.

Provides:
- Test environment setup (TESTING=true, secret key, in-memory database URL)
- db_session: SQLite in-memory database session, fresh per test
- client: TestClient with get_db overridden to use db_session
- make_user / auth_headers: users and bearer tokens
- Isolation of the config cache and Redis between tests
"""

import os

# =============================================================================
# Test Environment Configuration
# =============================================================================

os.environ['TESTING'] = 'true'
os.environ['SOCIALNET_SECRET_KEY'] = os.environ.get('SOCIALNET_SECRET_KEY', 'test-secret-key-for-testing')
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from socialnet import config_store
from socialnet import redis_client as redis_module
from socialnet.auth import create_access_token, hash_password
from socialnet.database import get_db
from socialnet.db_models import Base, DBUser
from socialnet.main import app

TEST_PASSWORD = "password123"

# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db_session() -> Session:
    """
    Create test database session with in-memory SQLite.

    StaticPool keeps one connection so the TestClient's worker threads see
    the same in-memory database as the test body.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def client(db_session):
    """TestClient whose requests share db_session."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()

# =============================================================================
# Users & Tokens
# =============================================================================

@pytest.fixture
def make_user(db_session):
    """
    Factory creating users directly in the database.

    Usage:
        alice = make_user("alice")
        admin = make_user("root", role="ADMIN")
    """
    password_hash = hash_password(TEST_PASSWORD)

    def _make_user(username: str, role: str = "USER", **fields) -> DBUser:
        user = DBUser(
            username=username,
            name=fields.pop("name", username.title()),
            hashed_password=password_hash,
            role=role,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    """Bearer header for a user: auth_headers(alice)."""
    def _headers(user: DBUser) -> dict:
        token = create_access_token(data={"sub": user.username})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", role="ADMIN")


@pytest.fixture
def moderator_user(make_user):
    return make_user("moderator", role="MODERATOR")

# =============================================================================
# State Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolate_caches(monkeypatch):
    """
    Run every test without Redis and with an empty config cache.

    Tests that exercise Redis install their own mock client.
    """
    monkeypatch.setattr(redis_module, "redis_client", None)
    config_store.clear_config_cache()
    yield
    config_store.clear_config_cache()


class FakeRedis:
    """Dict-backed stand-in for the few redis commands the cache helpers use (TTL ignored)."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    def publish(self, channel, message):
        return 0


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_module, "redis_client", fake)
    return fake
