# backend/medbook/services/appointments.py
"""
Reservation and appointment lifecycle.

book_slot claims a materialized slot. It first takes the doctor's schedule
lock, so a closure or rule change cannot land between the availability
check and the INSERT. The INSERT is also guarded by the partial unique index
uq_appointments_live_slot: with several processes racing for the same slot
exactly one commit succeeds and the others get SLOT_UNAVAILABLE. Nothing
here retries.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import AppointmentStatus, Appointments
from ..schemas.appointments import AppointmentRead
from .appointment_status import assert_valid_status_transition
from .errors import NotFoundError, SchedulingError, SlotUnavailableError, ValidationError
from .events import emit_event
from .lookups import lock_doctor_schedule
from .slots.availability import find_available_slot
from .slots.config import ensure_utc, utcnow

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


def _event_payload(appt: Appointments) -> dict:
    return {"appointment": AppointmentRead.model_validate(appt).model_dump(mode="json")}


# ---------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------

def get_appointment(db: Session, appointment_id: int) -> Appointments:
    appt = db.get(Appointments, appointment_id)
    if not appt:
        raise NotFoundError("Appointment")
    return appt


def list_appointments(
    db: Session,
    doctor_id: int | None = None,
    patient_id: int | None = None,
    status: AppointmentStatus | None = None,
) -> list[Appointments]:
    q = db.query(Appointments)
    if doctor_id is not None:
        q = q.filter(Appointments.doctor_id == doctor_id)
    if patient_id is not None:
        q = q.filter(Appointments.patient_id == patient_id)
    if status is not None:
        q = q.filter(Appointments.status == status)
    return q.order_by(Appointments.start_time, Appointments.id).all()


# ---------------------------------------------------------------------
# Reservation
# ---------------------------------------------------------------------

def book_slot(
    db: Session,
    doctor_id: int,
    start_time: datetime,
    end_time: datetime,
    patient_id: int,
    now: datetime | None = None,
    notes: str | None = None,
) -> Appointments:
    """
    Book the slot [start_time, end_time) for a patient.

    The tuple must match a currently available slot exactly. The new
    appointment starts as PENDING and records the rule or exception the
    slot came from.

    Raises:
        ValidationError: end_time not after start_time
        NotFoundError: unknown doctor
        SlotUnavailableError: no such free slot, or another booking won it
    """
    now = ensure_utc(now) if now else utcnow()
    start_time, end_time = ensure_utc(start_time), ensure_utc(end_time)
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")

    try:
        lock_doctor_schedule(db, doctor_id)
        slot = find_available_slot(db, doctor_id, start_time, end_time, now)
    except SchedulingError:
        db.rollback()
        raise
    if slot is None:
        db.rollback()
        logger.info(
            f"Slot unavailable: doctor={doctor_id} {start_time.isoformat()}..{end_time.isoformat()}"
        )
        raise SlotUnavailableError()

    appt = Appointments(
        doctor_id=doctor_id,
        patient_id=patient_id,
        start_time=slot.start_time,
        end_time=slot.end_time,
        status=AppointmentStatus.PENDING,
        rule_id=slot.rule_id,
        exception_id=slot.exception_id,
        notes=notes,
    )
    db.add(appt)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            f"Lost booking race: doctor={doctor_id} {start_time.isoformat()} patient={patient_id}"
        )
        raise SlotUnavailableError()
    db.refresh(appt)

    logger.info(
        f"Appointment {appt.id} booked: doctor={doctor_id} patient={patient_id} "
        f"{appt.start_time.isoformat()} ({slot.provenance})"
    )
    emit_event("appointment_booked", _event_payload(appt))
    return appt


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def cancel_appointment(
    db: Session,
    appointment_id: int,
    reason: str | None = None,
) -> Appointments:
    """
    Cancel a PENDING or CONFIRMED appointment; its slot becomes bookable
    again on the next availability read.
    """
    appt = get_appointment(db, appointment_id)
    if appt.status not in CANCELLABLE_STATUSES:
        raise ValidationError(f"Cannot cancel an appointment with status {appt.status.value}")

    appt.status = AppointmentStatus.CANCELLED
    appt.cancel_reason = reason
    db.commit()
    db.refresh(appt)

    logger.info(f"Appointment {appt.id} cancelled (reason={reason!r})")
    emit_event("appointment_cancelled", _event_payload(appt))
    return appt


def update_appointment_status(
    db: Session,
    appointment_id: int,
    status: AppointmentStatus,
    now: datetime | None = None,
) -> Appointments:
    """Move an appointment to status, enforcing the transition rules."""
    now = ensure_utc(now) if now else utcnow()
    appt = get_appointment(db, appointment_id)

    assert_valid_status_transition(appt.status, status, appt.start_time, appt.end_time, now)

    if status == appt.status:
        return appt
    if status == AppointmentStatus.CANCELLED:
        return cancel_appointment(db, appointment_id)

    previous = appt.status
    appt.status = status
    db.commit()
    db.refresh(appt)

    logger.info(f"Appointment {appt.id} status: {previous.value} → {status.value}")
    emit_event("appointment_status_changed", {**_event_payload(appt), "previous_status": previous.value})
    return appt
