"""Shared test fixtures: in-memory SQLite, fresh schema per test, seeded users and a novel."""
import os

# Settings are read at import time: point them at SQLite, keep the scheduler and Redis rate limits off
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from butternovel.db.base import Base  # noqa: E402
from butternovel.db.session import get_db  # noqa: E402
from butternovel.models import Novel, User  # noqa: E402

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    # StaticPool: every connection shares the same in-memory database
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db):
    rows = {
        "alice": User(id="u-alice", email="alice@example.com", name="Alice"),
        "bob": User(id="u-bob", email="bob@example.com", name="Bob"),
        "carol": User(id="u-carol", email="carol@example.com", name="Carol"),
        "dave": User(id="u-dave", email="dave@example.com", name="Dave"),
    }
    db.add_all(rows.values())
    db.commit()
    return {key: row.id for key, row in rows.items()}


@pytest.fixture
def novel(db, users):
    row = Novel(title="Moonlit Garden", slug="moonlit-garden", author_id=users["alice"], view_count=0)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def client(session_factory):
    from butternovel.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
