# backend/medbook/services/slots/availability.py
"""
Available slots for a doctor inside a window.

Loads the doctor's rules, template and exceptions, bounds the window to
the booking horizon, materializes, and removes slots already taken by live
appointments. Nothing is cached: every call re-materializes, so a
cancellation shows up on the next read.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...models import AvailabilityRules, RuleKind, ScheduleExceptions
from ..lookups import get_doctor, get_live_appointments
from .config import SchedulingConfig, ensure_utc, get_timezone, utcnow
from .materializer import Slot, candidate_span, materialize
from .templates import resolve_slot_template

logger = logging.getLogger(__name__)


def get_available_slots(
    db: Session,
    doctor_id: int,
    window_start: datetime,
    window_end: datetime,
    now: datetime | None = None,
    config: SchedulingConfig | None = None,
) -> list[Slot]:
    """
    Get bookable slots for a doctor.

    The window is cut at now + advance_booking_days. An empty list is a
    normal answer, never an error.

    Raises:
        NotFoundError: unknown doctor
    """
    now = ensure_utc(now) if now else utcnow()
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    # Step 1: Doctor and template
    doctor = get_doctor(db, doctor_id)
    if not doctor.is_active:
        return []
    template = resolve_slot_template(db, doctor_id, config)

    # Step 2: Booking horizon
    horizon = now + timedelta(days=template.advance_booking_days)
    window_end = min(window_end, horizon)
    if window_end <= window_start:
        return []

    # Step 3: Materialize over the whole days around the window
    tz = get_timezone(doctor.timezone)
    span_start, span_end = candidate_span(tz, window_start, window_end)
    rules = _get_rules(db, doctor_id, span_start, span_end)
    exceptions = _get_exceptions(db, doctor_id, span_start, span_end)
    slots = materialize(
        doctor_id,
        window_start,
        window_end,
        now,
        rules=rules,
        exceptions=exceptions,
        template=template,
        timezone=tz,
    )

    # Step 4: Subtract live appointments
    booked = get_live_appointments(db, doctor_id, window_start, window_end)
    if booked:
        slots = [
            slot for slot in slots
            if not any(slot.overlaps(a.start_time, a.end_time) for a in booked)
        ]

    logger.debug(
        f"doctor={doctor_id} window={window_start.isoformat()}..{window_end.isoformat()} "
        f"rules={len(rules)} exceptions={len(exceptions)} booked={len(booked)} "
        f"slots={len(slots)}"
    )
    return slots


def find_available_slot(
    db: Session,
    doctor_id: int,
    start: datetime,
    end: datetime,
    now: datetime | None = None,
) -> Slot | None:
    """
    Return the available slot exactly matching [start, end), if any.

    Agrees with any wider read: overlaps are settled over whole local days
    before the window is applied.
    """
    start, end = ensure_utc(start), ensure_utc(end)
    for slot in get_available_slots(db, doctor_id, start, end, now):
        if slot.start_time == start and slot.end_time == end:
            return slot
    return None


# ── Database helpers ─────────────────────────────────────────────────────


def _get_rules(
    db: Session,
    doctor_id: int,
    window_start: datetime,
    window_end: datetime,
) -> list[AvailabilityRules]:
    """Get rules that may produce slots in the span."""
    # Local dates can sit one day either side of the UTC dates
    first = window_start.date() - timedelta(days=1)
    last = window_end.date() + timedelta(days=1)

    return (
        db.query(AvailabilityRules)
        .filter(
            AvailabilityRules.doctor_id == doctor_id,
            or_(
                and_(
                    AvailabilityRules.kind == RuleKind.ONE_OFF,
                    AvailabilityRules.starts_at < window_end,
                    AvailabilityRules.ends_at > window_start,
                ),
                and_(
                    AvailabilityRules.kind == RuleKind.RECURRING,
                    AvailabilityRules.valid_from <= last,
                    or_(
                        AvailabilityRules.valid_to.is_(None),
                        AvailabilityRules.valid_to >= first,
                    ),
                ),
            ),
        )
        .order_by(AvailabilityRules.id)
        .all()
    )


def _get_exceptions(
    db: Session,
    doctor_id: int,
    window_start: datetime,
    window_end: datetime,
) -> list[ScheduleExceptions]:
    """Get doctor-specific and global exceptions touching the span."""
    first = window_start.date() - timedelta(days=1)
    last = window_end.date() + timedelta(days=1)

    return (
        db.query(ScheduleExceptions)
        .filter(
            or_(
                ScheduleExceptions.doctor_id == doctor_id,
                ScheduleExceptions.doctor_id.is_(None),
            ),
            ScheduleExceptions.date_from <= last,
            ScheduleExceptions.date_to >= first,
        )
        .order_by(ScheduleExceptions.id)
        .all()
    )
