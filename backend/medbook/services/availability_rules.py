# backend/medbook/services/availability_rules.py
"""
Availability rule management.

Rules are the doctor's declared working windows: RECURRING (weekly,
wall-clock times in the doctor's timezone, bounded by valid_from/valid_to)
or ONE_OFF (absolute UTC interval). ONE_OFF rules of a doctor never
overlap each other. Changing or removing a rule must never leave live
appointments outside of any rule; such changes fail with CONFLICT. Every
write holds the doctor's schedule lock from its checks to its commit.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Appointments, AvailabilityRules, RuleKind
from ..schemas.availability_rules import (
    AvailabilityRuleCreate,
    AvailabilityRuleRead,
    AvailabilityRuleUpdate,
    BatchResult,
    TimeSpec,
)
from .errors import ConflictError, NotFoundError, SchedulingError, ValidationError
from .events import emit_event
from .lookups import get_doctor, get_live_appointments, lock_doctor_schedule
from .slots.config import (
    SchedulingConfig,
    ensure_utc,
    get_scheduling_config,
    get_timezone,
    local_to_utc,
    utcnow,
)
from .slots.materializer import rule_covers, rule_overlaps

logger = logging.getLogger(__name__)

RECURRING_FIELDS = ("day_of_week", "start_time", "end_time", "valid_from", "valid_to")
ONE_OFF_FIELDS = ("starts_at", "ends_at")
RULE_FIELDS = ("kind",) + RECURRING_FIELDS + ONE_OFF_FIELDS


# ---------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------

def get_availability_rule(db: Session, rule_id: int) -> AvailabilityRules:
    rule = db.get(AvailabilityRules, rule_id)
    if not rule:
        raise NotFoundError("Availability rule")
    return rule


def list_availability_rules(db: Session, doctor_id: int) -> list[AvailabilityRules]:
    return (
        db.query(AvailabilityRules)
        .filter(AvailabilityRules.doctor_id == doctor_id)
        .order_by(AvailabilityRules.id)
        .all()
    )


# ---------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------

def create_availability_rule(
    db: Session,
    data: AvailabilityRuleCreate,
    config: SchedulingConfig | None = None,
) -> AvailabilityRules:
    """
    Create a rule.

    Raises:
        ValidationError: malformed or out-of-range fields
        NotFoundError: unknown doctor
        ConflictError: a ONE_OFF rule overlaps another ONE_OFF rule
    """
    config = config or get_scheduling_config()
    fields = _normalize(data.model_dump(include=set(RULE_FIELDS)))
    validate_rule_fields(fields, config)

    try:
        lock_doctor_schedule(db, data.doctor_id)
        if fields["kind"] == RuleKind.ONE_OFF:
            _check_one_off_overlap(db, data.doctor_id, fields["starts_at"], fields["ends_at"])
    except SchedulingError:
        db.rollback()
        raise

    rule = AvailabilityRules(doctor_id=data.doctor_id, **fields)
    db.add(rule)
    db.commit()
    db.refresh(rule)

    logger.info(f"Availability rule {rule.id} ({rule.kind.value}) created for doctor={rule.doctor_id}")
    emit_event("availability_changed", {"action": "created", "rule_id": rule.id, "doctor_id": rule.doctor_id})
    return rule


def update_availability_rule(
    db: Session,
    rule_id: int,
    data: AvailabilityRuleUpdate,
    config: SchedulingConfig | None = None,
) -> AvailabilityRules:
    """
    Update a rule.

    Live appointments that the current rule overlaps must still be fully
    inside one occurrence of the updated rule.

    Raises:
        NotFoundError: unknown rule
        ValidationError: merged fields are invalid
        ConflictError: the change would orphan live appointments, or the
            updated ONE_OFF rule overlaps another ONE_OFF rule
    """
    config = config or get_scheduling_config()
    rule = get_availability_rule(db, rule_id)

    changes = data.model_dump(exclude_unset=True)
    merged = {field: changes.get(field, getattr(rule, field)) for field in RULE_FIELDS}
    merged = _normalize(merged)
    validate_rule_fields(merged, config)

    try:
        lock_doctor_schedule(db, rule.doctor_id)
        if merged["kind"] == RuleKind.ONE_OFF:
            _check_one_off_overlap(
                db, rule.doctor_id, merged["starts_at"], merged["ends_at"], exclude_id=rule.id
            )

        doctor = get_doctor(db, rule.doctor_id)
        tz = get_timezone(doctor.timezone)
        proposed = AvailabilityRules(id=rule.id, doctor_id=rule.doctor_id, **merged)

        orphaned = [
            appt for appt in _dependent_appointments(db, rule, tz)
            if not rule_covers(proposed, tz, appt.start_time, appt.end_time)
        ]
        if orphaned:
            raise ConflictError(
                f"Cannot update schedule: {_count_phrase(len(orphaned))} in this period "
                f"would no longer be covered. Cancel or reschedule them first."
            )
    except SchedulingError:
        db.rollback()
        raise

    for field, value in merged.items():
        setattr(rule, field, value)
    db.commit()
    db.refresh(rule)

    logger.info(f"Availability rule {rule.id} updated")
    emit_event("availability_changed", {"action": "updated", "rule_id": rule.id, "doctor_id": rule.doctor_id})
    return rule


def delete_availability_rule(db: Session, rule_id: int) -> None:
    """
    Delete a rule.

    Raises:
        NotFoundError: unknown rule
        ConflictError: live appointments fall inside the rule
    """
    rule = get_availability_rule(db, rule_id)
    doctor_id = rule.doctor_id

    try:
        lock_doctor_schedule(db, doctor_id)
        doctor = get_doctor(db, doctor_id)
        dependent = _dependent_appointments(db, rule, get_timezone(doctor.timezone))
        if dependent:
            raise ConflictError(
                f"Cannot delete schedule: {_count_phrase(len(dependent))} in this period. "
                f"Cancel or reschedule them first."
            )
    except SchedulingError:
        db.rollback()
        raise

    db.delete(rule)
    db.commit()

    logger.info(f"Availability rule {rule_id} deleted (doctor={doctor_id})")
    emit_event("availability_changed", {"action": "deleted", "rule_id": rule_id, "doctor_id": doctor_id})


# ---------------------------------------------------------------------
# Bulk authoring
# ---------------------------------------------------------------------

def create_many(
    db: Session,
    doctor_id: int,
    dates: list[date],
    time_specs: list[TimeSpec],
    now: datetime | None = None,
    config: SchedulingConfig | None = None,
) -> BatchResult:
    """
    Create one ONE_OFF rule per (date, time_spec) pair, best effort.

    Pairs starting at or before now are skipped. Every other pair is created
    and committed on its own, so one failure leaves earlier successes in
    place.

    Raises:
        ValidationError: nothing requested, or every pair is in the past
        NotFoundError: unknown doctor
    """
    now = ensure_utc(now) if now else utcnow()
    dates = list(dict.fromkeys(dates))
    time_specs = list(dict.fromkeys((spec.start, spec.end) for spec in time_specs))

    if not dates:
        raise ValidationError("Please select at least one date")
    if not time_specs:
        raise ValidationError("Please select at least one time slot")

    doctor = get_doctor(db, doctor_id)
    tz = get_timezone(doctor.timezone)

    pending: list[tuple[datetime, datetime]] = []
    skipped = 0
    for day in dates:
        for start, end in time_specs:
            starts_at = local_to_utc(tz, datetime.combine(day, start))
            ends_at = local_to_utc(tz, datetime.combine(day, end))
            if starts_at <= now:
                skipped += 1
                continue
            pending.append((starts_at, ends_at))

    if not pending:
        raise ValidationError("All requested slots are in the past")

    created: list[AvailabilityRules] = []
    failed = 0
    first_error = None
    for starts_at, ends_at in pending:
        data = AvailabilityRuleCreate(
            doctor_id=doctor_id,
            kind=RuleKind.ONE_OFF,
            starts_at=starts_at,
            ends_at=ends_at,
        )
        try:
            created.append(create_availability_rule(db, data, config))
        except SchedulingError as e:
            db.rollback()
            failed += 1
            first_error = first_error or e.message
            logger.warning(f"Bulk create for doctor={doctor_id} at {starts_at.isoformat()} failed: {e.message}")
        except SQLAlchemyError as e:
            db.rollback()
            failed += 1
            first_error = first_error or str(e)
            logger.exception(f"Bulk create for doctor={doctor_id} at {starts_at.isoformat()} failed")

    logger.info(
        f"Bulk create for doctor={doctor_id}: created={len(created)} "
        f"failed={failed} skipped={skipped}"
    )
    return BatchResult(
        requested=len(dates) * len(time_specs),
        created=len(created),
        failed=failed,
        skipped=skipped,
        first_error=first_error,
        rules=[AvailabilityRuleRead.model_validate(rule) for rule in created],
    )


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------

def validate_rule_fields(fields: dict[str, Any], config: SchedulingConfig) -> None:
    """Raise VALIDATION_ERROR when a rule's fields are inconsistent."""
    kind = fields.get("kind")

    if kind == RuleKind.RECURRING:
        day = fields.get("day_of_week")
        if day is None:
            raise ValidationError("day_of_week is required for recurring schedules")
        if not 0 <= day <= 6:
            raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)")
        if fields.get("valid_from") is None:
            raise ValidationError("validFrom is required for recurring schedules")
        if fields.get("valid_to") is not None and fields["valid_to"] < fields["valid_from"]:
            raise ValidationError("validTo must be after validFrom")
        if fields.get("start_time") is None or fields.get("end_time") is None:
            raise ValidationError("Start time and end time are required")
        minutes = _minutes_between(fields["start_time"], fields["end_time"])

    elif kind == RuleKind.ONE_OFF:
        if fields.get("starts_at") is None or fields.get("ends_at") is None:
            raise ValidationError("Start time and end time are required")
        minutes = (fields["ends_at"] - fields["starts_at"]).total_seconds() / 60

    else:
        raise ValidationError("kind must be RECURRING or ONE_OFF")

    if minutes <= 0:
        raise ValidationError("Start time must be before end time")
    if minutes < config.min_rule_minutes:
        raise ValidationError(f"Time slot must be at least {config.min_rule_minutes} minutes long")
    if minutes > config.max_rule_minutes:
        raise ValidationError("Time slot cannot exceed 24 hours")


def _normalize(fields: dict[str, Any]) -> dict[str, Any]:
    """Clear the fields that do not belong to the rule's kind."""
    fields = dict(fields)
    if fields.get("kind") == RuleKind.RECURRING:
        for field in ONE_OFF_FIELDS:
            fields[field] = None
    elif fields.get("kind") == RuleKind.ONE_OFF:
        for field in RECURRING_FIELDS:
            fields[field] = None
        for field in ONE_OFF_FIELDS:
            if fields.get(field) is not None:
                fields[field] = ensure_utc(fields[field])
    return fields


def _minutes_between(start: time, end: time) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


def _dependent_appointments(db: Session, rule: AvailabilityRules, tz) -> list[Appointments]:
    """Live appointments that overlap any occurrence of rule."""
    if rule.kind == RuleKind.ONE_OFF:
        candidates = get_live_appointments(db, rule.doctor_id, rule.starts_at, rule.ends_at)
    else:
        start = local_to_utc(tz, datetime.combine(rule.valid_from, time.min))
        end = None
        if rule.valid_to is not None:
            end = local_to_utc(tz, datetime.combine(rule.valid_to + timedelta(days=1), time.min))
        candidates = get_live_appointments(db, rule.doctor_id, start, end)

    return [
        appt for appt in candidates
        if rule_overlaps(rule, tz, appt.start_time, appt.end_time)
    ]


def _count_phrase(count: int) -> str:
    return f"{count} appointment{'' if count == 1 else 's'} exist{'s' if count == 1 else ''}"


def _check_one_off_overlap(
    db: Session,
    doctor_id: int,
    starts_at: datetime,
    ends_at: datetime,
    exclude_id: int | None = None,
) -> None:
    """Raise CONFLICT when [starts_at, ends_at) overlaps another ONE_OFF rule."""
    q = db.query(AvailabilityRules.id).filter(
        AvailabilityRules.doctor_id == doctor_id,
        AvailabilityRules.kind == RuleKind.ONE_OFF,
        AvailabilityRules.starts_at < ends_at,
        AvailabilityRules.ends_at > starts_at,
    )
    if exclude_id is not None:
        q = q.filter(AvailabilityRules.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("This time slot overlaps with an existing availability")
