"""Shared test fixtures for the scheduling core."""

from datetime import date, datetime, time
from pathlib import Path
from typing import Callable, Generator

import pytest
import pytz
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from medbook.database import build_engine
from medbook.models import Base, Doctors

UTC = pytz.UTC

# Sunday 2030-01-06 12:00 UTC; the following day is a Monday
NOW = datetime(2030, 1, 6, 12, 0, tzinfo=UTC)
MONDAY = date(2030, 1, 7)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Aware UTC datetime on day at hour:minute."""
    return UTC.localize(datetime.combine(day, time(hour, minute)))


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Keep events local even when REDIS_URL is set in the environment."""
    monkeypatch.setattr("medbook.services.events.redis_client", None)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite so several sessions can share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_doctor(db: Session) -> Callable[..., Doctors]:
    def _make(display_name: str = "Dr. Grey", timezone: str = "UTC", is_active: int = 1) -> Doctors:
        doctor = Doctors(display_name=display_name, timezone=timezone, is_active=is_active)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make


@pytest.fixture
def doctor(make_doctor) -> Doctors:
    return make_doctor()
