# backend/medbook/services/schedule_exceptions.py
"""
Schedule exceptions: closures (UNAVAILABLE) and extra hours (AVAILABLE).

A global exception (doctor_id NULL) applies to every doctor. Times are
wall-clock in each doctor's timezone; a closure without times covers whole
days.
"""

import logging
from datetime import date, time

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import ExceptionType, ScheduleExceptions
from ..schemas.schedule_exceptions import (
    ExceptionReason,
    ExceptionScope,
    ScheduleExceptionCreate,
    ScheduleExceptionRead,
)
from .errors import NotFoundError, SchedulingError, ValidationError
from .events import emit_event
from .lookups import lock_doctor_schedule

logger = logging.getLogger(__name__)


def count_days_inclusive(date_from: date, date_to: date) -> int:
    """Number of calendar days in [date_from, date_to]; 0 when reversed."""
    if date_to < date_from:
        return 0
    return (date_to - date_from).days + 1


def validate_time_range(start_time: time | None, end_time: time | None) -> None:
    if start_time is None or end_time is None:
        return
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")


def create_schedule_exception(
    db: Session,
    data: ScheduleExceptionCreate,
    created_by: int | None = None,
) -> list[ScheduleExceptions]:
    """
    Create exception rows: one global row for ALL_DOCTORS, one row per doctor
    for SELECTED_DOCTORS. All rows are written in one transaction.

    Raises:
        ValidationError: inconsistent dates, times or scope
        NotFoundError: a selected doctor does not exist
    """
    date_to = data.date_to or data.date_from
    if date_to < data.date_from:
        raise ValidationError("End date must be on or after start date")

    if data.scope == ExceptionScope.SELECTED_DOCTORS and not data.doctor_ids:
        raise ValidationError("At least one doctor must be selected")

    if data.type == ExceptionType.UNAVAILABLE:
        if not data.is_full_day and (data.start_time is None or data.end_time is None):
            raise ValidationError("Partial closure requires start time and end time")
        validate_time_range(data.start_time, data.end_time)
    else:
        if data.start_time is None or data.end_time is None:
            raise ValidationError("Extra hours require start time and end time")
        validate_time_range(data.start_time, data.end_time)

    # Full-day closures ignore any times sent along
    whole_day = data.type == ExceptionType.UNAVAILABLE and data.is_full_day
    start_time = None if whole_day else data.start_time
    end_time = None if whole_day else data.end_time

    reason = data.reason or (
        ExceptionReason.HOLIDAY.value
        if data.type == ExceptionType.UNAVAILABLE
        else ExceptionReason.EXTRA_HOURS.value
    )

    if data.scope == ExceptionScope.ALL_DOCTORS:
        doctor_ids: list[int | None] = [None]
    else:
        doctor_ids = sorted(set(data.doctor_ids))

    # A global exception locks every doctor's schedule
    try:
        for doctor_id in doctor_ids:
            lock_doctor_schedule(db, doctor_id)
    except SchedulingError:
        db.rollback()
        raise

    created = []
    for doctor_id in doctor_ids:
        row = ScheduleExceptions(
            doctor_id=doctor_id,
            type=data.type,
            date_from=data.date_from,
            date_to=date_to,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            label=data.label,
            created_by=created_by,
        )
        db.add(row)
        created.append(row)

    db.commit()
    for row in created:
        db.refresh(row)

    logger.info(
        f"Schedule exception(s) created: count={len(created)} type={data.type.value} "
        f"reason={reason} days={count_days_inclusive(data.date_from, date_to)} "
        f"created_by={created_by}"
    )
    emit_event(
        "availability_changed",
        {
            "action": "exception_created",
            "exceptions": [
                ScheduleExceptionRead.model_validate(row).model_dump(mode="json")
                for row in created
            ],
        },
    )
    return created


def list_schedule_exceptions(
    db: Session,
    doctor_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    type: ExceptionType | None = None,
) -> list[ScheduleExceptions]:
    """
    List exceptions, newest period first.

    Filtering by doctor also returns global exceptions; the date filters keep
    every exception that touches [date_from, date_to].
    """
    q = db.query(ScheduleExceptions)
    if doctor_id is not None:
        q = q.filter(
            or_(
                ScheduleExceptions.doctor_id == doctor_id,
                ScheduleExceptions.doctor_id.is_(None),
            )
        )
    if date_from is not None:
        q = q.filter(ScheduleExceptions.date_to >= date_from)
    if date_to is not None:
        q = q.filter(ScheduleExceptions.date_from <= date_to)
    if type is not None:
        q = q.filter(ScheduleExceptions.type == type)

    return q.order_by(ScheduleExceptions.date_from.desc(), ScheduleExceptions.id).all()


def get_schedule_exception(db: Session, exception_id: int) -> ScheduleExceptions:
    row = db.get(ScheduleExceptions, exception_id)
    if not row:
        raise NotFoundError("Schedule exception")
    return row


def delete_schedule_exception(db: Session, exception_id: int) -> None:
    row = get_schedule_exception(db, exception_id)

    doctor_id = row.doctor_id
    db.delete(row)
    db.commit()

    logger.info(f"Schedule exception {exception_id} deleted")
    emit_event(
        "availability_changed",
        {"action": "exception_deleted", "exception_ids": [exception_id], "doctor_ids": [doctor_id]},
    )
