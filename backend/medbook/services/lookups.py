# backend/medbook/services/lookups.py
"""
Shared database lookups for the scheduling services.
"""

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models import LIVE_STATUSES, Appointments, Doctors
from .errors import NotFoundError


def get_doctor(db: Session, doctor_id: int) -> Doctors:
    """Get doctor by ID or raise NOT_FOUND."""
    doctor = db.get(Doctors, doctor_id)
    if not doctor:
        raise NotFoundError("Doctor")
    return doctor


def lock_doctor_schedule(db: Session, doctor_id: int | None = None) -> None:
    """
    Take the schedule write lock of one doctor (or of every doctor when
    doctor_id is None) for the rest of the current transaction.

    Bumps doctors.schedule_version. The row stays locked until commit or
    rollback (SQLite locks the whole database), so a writer that takes it
    before checking availability keeps that check valid until it commits.

    Raises:
        NotFoundError: unknown doctor
    """
    stmt = update(Doctors).values(schedule_version=Doctors.schedule_version + 1)
    if doctor_id is not None:
        stmt = stmt.where(Doctors.id == doctor_id)
    result = db.execute(stmt.execution_options(synchronize_session=False))
    if doctor_id is not None and result.rowcount == 0:
        raise NotFoundError("Doctor")


def get_live_appointments(
    db: Session,
    doctor_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Appointments]:
    """
    Get non-cancelled appointments for doctor, optionally only those
    overlapping [start, end).
    """
    q = db.query(Appointments).filter(
        Appointments.doctor_id == doctor_id,
        Appointments.status.in_(LIVE_STATUSES),
    )
    if end is not None:
        q = q.filter(Appointments.start_time < end)
    if start is not None:
        q = q.filter(Appointments.end_time > start)
    return q.order_by(Appointments.start_time).all()
