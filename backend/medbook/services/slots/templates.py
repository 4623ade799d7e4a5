# backend/medbook/services/slots/templates.py
"""
Slot template resolver.

A doctor has at most one stored template. Without one, the configured
defaults apply (30 min slots, no buffer, 30 days ahead).
"""

import logging

from sqlalchemy.orm import Session

from ...models import SlotTemplates
from ...schemas.slot_templates import SlotTemplateRead, SlotTemplateUpsert
from ..errors import ValidationError
from ..lookups import get_doctor
from .config import SchedulingConfig, get_scheduling_config

logger = logging.getLogger(__name__)


def resolve_slot_template(
    db: Session,
    doctor_id: int,
    config: SchedulingConfig | None = None,
) -> SlotTemplateRead:
    """Return the doctor's stored template, or the defaults when none exists."""
    config = config or get_scheduling_config()

    template = _get_template(db, doctor_id)
    if template:
        return SlotTemplateRead.model_validate(template)

    return SlotTemplateRead(
        doctor_id=doctor_id,
        duration_minutes=config.default_duration_minutes,
        buffer_minutes=config.default_buffer_minutes,
        advance_booking_days=config.default_advance_booking_days,
        is_default=True,
    )


def upsert_slot_template(
    db: Session,
    data: SlotTemplateUpsert,
    config: SchedulingConfig | None = None,
) -> SlotTemplateRead:
    """
    Create or update a doctor's template.

    Fields left as None keep their stored (or default) value. Validation runs
    before anything touches the session, so a rejected write changes nothing.
    """
    config = config or get_scheduling_config()
    validate_template_fields(
        data.duration_minutes,
        data.buffer_minutes,
        data.advance_booking_days,
        config,
    )
    get_doctor(db, data.doctor_id)

    template = _get_template(db, data.doctor_id)
    if template is None:
        template = SlotTemplates(
            doctor_id=data.doctor_id,
            duration_minutes=config.default_duration_minutes,
            buffer_minutes=config.default_buffer_minutes,
            advance_booking_days=config.default_advance_booking_days,
        )
        db.add(template)

    for field, value in data.model_dump(exclude={"doctor_id"}, exclude_none=True).items():
        setattr(template, field, value)

    db.commit()
    db.refresh(template)

    logger.info(
        f"Slot template upserted for doctor={data.doctor_id}: "
        f"{template.duration_minutes}/{template.buffer_minutes}/{template.advance_booking_days}"
    )
    return SlotTemplateRead.model_validate(template)


def validate_template_fields(
    duration_minutes: int | None,
    buffer_minutes: int | None,
    advance_booking_days: int | None,
    config: SchedulingConfig,
) -> None:
    """Raise VALIDATION_ERROR for out-of-range template values."""
    if duration_minutes is not None:
        if duration_minutes < config.min_duration_minutes:
            raise ValidationError(
                f"Slot duration must be at least {config.min_duration_minutes} minutes"
            )
        if duration_minutes > config.max_duration_minutes:
            raise ValidationError(
                f"Slot duration cannot exceed {config.max_duration_minutes} minutes"
            )
    if buffer_minutes is not None and buffer_minutes < 0:
        raise ValidationError("Buffer minutes cannot be negative")
    if advance_booking_days is not None and advance_booking_days < 1:
        raise ValidationError("Advance booking days must be at least 1 day")


def _get_template(db: Session, doctor_id: int) -> SlotTemplates | None:
    return db.query(SlotTemplates).filter(SlotTemplates.doctor_id == doctor_id).first()
