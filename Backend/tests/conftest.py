"""
Shared fixtures.

The application reads its settings at import time, so the environment is
pointed at a throwaway SQLite file (no Redis, no rate limiting) before any
application module is imported.
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="gotchi-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'gotchi.db')}"
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["TX_BACKOFF_BASE_MS"] = "1"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import text  # noqa: E402

from database import SessionLocal, engine  # noqa: E402
from models import Base  # noqa: E402
from users import ensure_user  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from app import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user():
    """Create a committed user with the given points; returns the wallet."""

    def _make(wallet, points=0, username=None):
        with SessionLocal() as session:
            ensure_user(session, wallet, username=username)
            if points:
                session.execute(
                    text("UPDATE users SET points = :points WHERE wallet_address = :wallet"),
                    {"points": points, "wallet": wallet},
                )
            session.commit()
        return wallet

    return _make
