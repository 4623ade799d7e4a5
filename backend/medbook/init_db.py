# backend/medbook/init_db.py
"""
Bootstrap the scheduling database.

    python -m medbook.init_db [--doctor "Dr. Smith" --timezone Europe/Berlin]

Creates any missing tables (use alembic for upgrades of an existing schema)
and optionally seeds one doctor. Running it twice does not duplicate the
doctor.
"""

import argparse
import logging
from pathlib import Path

import pytz
from sqlalchemy.engine import Engine

from .config import configure_logging
from .database import SessionLocal, engine as default_engine
from .models import Base, Doctors

logger = logging.getLogger(__name__)


def init_db(
    engine: Engine,
    doctor_name: str | None = None,
    timezone: str = "UTC",
) -> int | None:
    """Create tables and seed a doctor. Returns the doctor's id when seeding."""
    Base.metadata.create_all(engine)
    logger.info(f"Schema ready on {engine.url.render_as_string(hide_password=True)}")

    if not doctor_name:
        return None
    if timezone not in pytz.all_timezones_set:
        raise ValueError(f"Unknown timezone {timezone!r}")

    session = SessionLocal(bind=engine)
    try:
        doctor = session.query(Doctors).filter(Doctors.display_name == doctor_name).first()
        if doctor:
            logger.info(f"[BOOTSTRAP] Doctor already exists (id={doctor.id})")
            return doctor.id

        doctor = Doctors(display_name=doctor_name, timezone=timezone, is_active=1)
        session.add(doctor)
        session.commit()
        logger.info(f"[BOOTSTRAP] Doctor created (id={doctor.id}, tz={timezone})")
        return doctor.id
    finally:
        session.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create the scheduling schema")
    parser.add_argument("--doctor", help="display name of a doctor to seed")
    parser.add_argument("--timezone", default="UTC", help="IANA timezone of the seeded doctor")
    args = parser.parse_args(argv)

    configure_logging()
    if default_engine.url.get_backend_name() == "sqlite" and default_engine.url.database:
        Path(default_engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    init_db(default_engine, args.doctor, args.timezone)


if __name__ == "__main__":
    main()
