# backend/medbook/services/appointment_status.py
"""
Appointment status transitions.

Rules:
- CANCELLED, COMPLETED, NO_SHOW are terminal
- Same status is a no-op
- CONFIRMED only while the appointment has not ended
- COMPLETED only from CONFIRMED, once the appointment has started
- NO_SHOW only from PENDING or CONFIRMED, once the appointment has started
- CANCELLED from PENDING or CONFIRMED at any time
- Anything else (e.g. CONFIRMED -> PENDING) is rejected
"""

from datetime import datetime

from ..models import AppointmentStatus
from .errors import ValidationError

TERMINAL_STATUSES = {
    AppointmentStatus.CANCELLED: "Cannot update a cancelled appointment.",
    AppointmentStatus.COMPLETED: "Cannot update a completed appointment.",
    AppointmentStatus.NO_SHOW: "Cannot update a no-show appointment.",
}


def assert_valid_status_transition(
    current: AppointmentStatus,
    next_status: AppointmentStatus,
    start: datetime,
    end: datetime,
    now: datetime,
) -> None:
    """Raise VALIDATION_ERROR when current -> next_status is not allowed at now."""
    if current in TERMINAL_STATUSES:
        raise ValidationError(TERMINAL_STATUSES[current])

    if current == next_status:
        return

    if next_status == AppointmentStatus.CONFIRMED:
        if now > end:
            raise ValidationError("Cannot confirm a past appointment.")
        return

    if next_status == AppointmentStatus.COMPLETED:
        if current != AppointmentStatus.CONFIRMED:
            raise ValidationError("Cannot complete an unconfirmed appointment.")
        if now < start:
            raise ValidationError("Cannot complete an appointment that hasn't started.")
        return

    if next_status == AppointmentStatus.NO_SHOW:
        if now < start:
            raise ValidationError("Cannot mark an appointment that hasn't started as no-show.")
        return

    if next_status == AppointmentStatus.CANCELLED:
        return

    raise ValidationError(
        f"Invalid status transition from {current.value} to {next_status.value}."
    )
