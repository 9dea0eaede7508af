"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. Tables are created fresh
for each test that asks for a session and dropped afterwards, so nothing
leaks between tests.
"""
import pytest
import sys
import os
from datetime import date, timedelta

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("HEALTH_DATA_SOURCE", "none")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Base, SessionLocal, engine, init_db
from services.health_metrics import MetricsRecord
from services.training_data import CompletedDay

HOUR = 3600.0


@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema per test.

    In-memory SQLite shares one connection (StaticPool), so sessions opened
    by stores during the test see the same data.
    """
    init_db()
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def full_metrics():
    """A well-recovered day with every signal present."""
    return MetricsRecord(
        date=date(2025, 3, 10),
        resting_heart_rate=55.0,
        hrv=80.0,
        sleep_duration=8 * HOUR,
        steps=8000,
        active_energy=450.0,
    )


def make_completed_days(count, start=date(2025, 1, 6), first=3, second=4):
    """Completed days with varied but realistic metrics."""
    days = []
    for i in range(count):
        day = start + timedelta(days=i)
        days.append(CompletedDay(
            date=day,
            first_energy=first,
            second_energy=second,
            metrics=MetricsRecord(
                date=day,
                resting_heart_rate=52.0 + (i * 7) % 20,
                hrv=35.0 + (i * 11) % 50,
                sleep_duration=(6.0 + (i * 3) % 5 * 0.5) * HOUR,
                steps=6000 + i * 250,
            ),
        ))
    return days


@pytest.fixture
def completed_days_factory():
    return make_completed_days
