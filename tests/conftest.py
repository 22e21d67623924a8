"""
Pytest configuration and fixtures

Every test gets a fresh in-memory SQLite database, so nothing leaks between
tests and no file is written.
"""
import os
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from training_dashboard.database import Base, get_db
from training_dashboard.main import app
from training_dashboard.models import Activity

_activity_ids = iter(range(1000, 10_000_000))


@pytest.fixture(scope="function")
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_activity(db_session):
    """Insert an activity; defaults describe a 5k run."""
    def _make(start_date, distance=5000.0, type="Run", **kwargs):
        if isinstance(start_date, str):
            start_date = datetime.fromisoformat(start_date)
        activity = Activity(
            id=kwargs.pop("id", next(_activity_ids)),
            name=kwargs.pop("name", "Morning Run"),
            type=type,
            start_date=start_date,
            distance=distance,
            total_elevation_gain=kwargs.pop("total_elevation_gain", 0.0),
            **kwargs,
        )
        db_session.add(activity)
        db_session.commit()
        return activity

    return _make
