"""Tests for availability rule management."""

from datetime import date, datetime, time, timedelta

import pytest

from conftest import MONDAY, NOW, at
from medbook.models import AvailabilityRules, RuleKind
from medbook.schemas.availability_rules import AvailabilityRuleCreate, AvailabilityRuleUpdate
from medbook.services.appointments import book_slot, cancel_appointment
from medbook.services.availability_rules import (
    create_availability_rule,
    delete_availability_rule,
    get_availability_rule,
    list_availability_rules,
    update_availability_rule,
)
from medbook.services.errors import ConflictError, NotFoundError, ValidationError
from medbook.services.slots import get_available_slots


def weekly(doctor_id, **overrides):
    fields = dict(
        doctor_id=doctor_id,
        kind=RuleKind.RECURRING,
        day_of_week=1,
        start_time=time(9),
        end_time=time(10),
        valid_from=date(2030, 1, 1),
    )
    fields.update(overrides)
    return AvailabilityRuleCreate(**fields)


def test_create_recurring_rule(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))

    assert rule.id is not None
    assert rule.kind == RuleKind.RECURRING
    assert rule.starts_at is None
    assert list_availability_rules(db, doctor.id) == [rule]
    assert get_availability_rule(db, rule.id) is rule


def test_create_one_off_rule_normalizes_to_utc(db, doctor):
    rule = create_availability_rule(
        db,
        AvailabilityRuleCreate(
            doctor_id=doctor.id,
            kind=RuleKind.ONE_OFF,
            starts_at=datetime(2030, 1, 7, 14, 0),
            ends_at=datetime(2030, 1, 7, 16, 0),
            # ignored for one-off rules
            day_of_week=3,
        ),
    )
    db.expire_all()
    rule = get_availability_rule(db, rule.id)

    assert rule.starts_at == at(MONDAY, 14)
    assert rule.ends_at == at(MONDAY, 16)
    assert rule.day_of_week is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"day_of_week": 7},
        {"day_of_week": -1},
        {"day_of_week": None},
        {"start_time": time(10), "end_time": time(10)},
        {"start_time": time(11), "end_time": time(10)},
        {"start_time": time(9), "end_time": time(9, 10)},
        {"valid_from": None},
        {"valid_to": date(2029, 12, 31)},
        {"end_time": None},
    ],
)
def test_invalid_recurring_rules(db, doctor, overrides):
    with pytest.raises(ValidationError):
        create_availability_rule(db, weekly(doctor.id, **overrides))

    assert db.query(AvailabilityRules).count() == 0


@pytest.mark.parametrize(
    "starts_at, ends_at",
    [
        (at(MONDAY, 10), None),
        (None, at(MONDAY, 10)),
        (at(MONDAY, 10), at(MONDAY, 9)),
        (at(MONDAY, 10), at(MONDAY, 10, 14)),
        (at(MONDAY, 0), at(MONDAY, 0) + timedelta(hours=24, minutes=1)),
    ],
)
def test_invalid_one_off_rules(db, doctor, starts_at, ends_at):
    data = AvailabilityRuleCreate(doctor_id=doctor.id, kind=RuleKind.ONE_OFF, starts_at=starts_at, ends_at=ends_at)

    with pytest.raises(ValidationError):
        create_availability_rule(db, data)


def test_one_off_rule_of_exactly_24_hours(db, doctor):
    data = AvailabilityRuleCreate(
        doctor_id=doctor.id, kind=RuleKind.ONE_OFF,
        starts_at=at(MONDAY, 0), ends_at=at(MONDAY + timedelta(days=1), 0),
    )

    assert create_availability_rule(db, data).id is not None


def one_off(doctor_id, starts_at, ends_at):
    return AvailabilityRuleCreate(doctor_id=doctor_id, kind=RuleKind.ONE_OFF, starts_at=starts_at, ends_at=ends_at)


def test_overlapping_one_off_rule_is_a_conflict(db, doctor):
    create_availability_rule(db, one_off(doctor.id, at(MONDAY, 9), at(MONDAY, 10)))

    with pytest.raises(ConflictError) as exc_info:
        create_availability_rule(db, one_off(doctor.id, at(MONDAY, 9, 30), at(MONDAY, 11)))

    assert exc_info.value.message == "This time slot overlaps with an existing availability"
    assert len(list_availability_rules(db, doctor.id)) == 1


def test_adjacent_and_recurring_rules_do_not_conflict(db, doctor, make_doctor):
    create_availability_rule(db, one_off(doctor.id, at(MONDAY, 9), at(MONDAY, 10)))
    create_availability_rule(db, weekly(doctor.id))

    create_availability_rule(db, one_off(doctor.id, at(MONDAY, 10), at(MONDAY, 11)))
    other = make_doctor("Dr. House")
    create_availability_rule(db, one_off(other.id, at(MONDAY, 9), at(MONDAY, 10)))

    assert len(list_availability_rules(db, doctor.id)) == 3


def test_update_one_off_rule_overlap(db, doctor):
    first = create_availability_rule(db, one_off(doctor.id, at(MONDAY, 9), at(MONDAY, 10)))
    second = create_availability_rule(db, one_off(doctor.id, at(MONDAY, 14), at(MONDAY, 15)))

    # Overlapping its own old interval is fine
    moved = update_availability_rule(db, first.id, AvailabilityRuleUpdate(ends_at=at(MONDAY, 10, 30)))
    assert moved.ends_at == at(MONDAY, 10, 30)

    with pytest.raises(ConflictError):
        update_availability_rule(db, second.id, AvailabilityRuleUpdate(starts_at=at(MONDAY, 10)))

    db.refresh(second)
    assert second.starts_at == at(MONDAY, 14)


def test_unknown_doctor(db):
    with pytest.raises(NotFoundError):
        create_availability_rule(db, weekly(999))


def test_unknown_rule(db):
    with pytest.raises(NotFoundError):
        get_availability_rule(db, 123)
    with pytest.raises(NotFoundError):
        delete_availability_rule(db, 123)
    with pytest.raises(NotFoundError):
        update_availability_rule(db, 123, AvailabilityRuleUpdate(start_time=time(8)))


def test_update_changes_materialized_slots(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))

    update_availability_rule(db, rule.id, AvailabilityRuleUpdate(start_time=time(14), end_time=time(15)))

    slots = get_available_slots(db, doctor.id, at(MONDAY, 0), at(MONDAY, 23), now=NOW)
    assert [s.start_time for s in slots] == [at(MONDAY, 14), at(MONDAY, 14, 30)]


def test_invalid_update_is_rejected(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))

    with pytest.raises(ValidationError):
        update_availability_rule(db, rule.id, AvailabilityRuleUpdate(end_time=time(8)))

    db.refresh(rule)
    assert rule.end_time == time(10)


def test_update_orphaning_appointment_is_a_conflict(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))
    book_slot(db, doctor.id, at(MONDAY, 9), at(MONDAY, 9, 30), patient_id=1, now=NOW)

    with pytest.raises(ConflictError) as exc_info:
        update_availability_rule(db, rule.id, AvailabilityRuleUpdate(start_time=time(10), end_time=time(11)))

    assert exc_info.value.status_code == 409
    db.refresh(rule)
    assert (rule.start_time, rule.end_time) == (time(9), time(10))


def test_update_still_covering_appointment_is_allowed(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))
    book_slot(db, doctor.id, at(MONDAY, 9), at(MONDAY, 9, 30), patient_id=1, now=NOW)

    updated = update_availability_rule(db, rule.id, AvailabilityRuleUpdate(end_time=time(12)))

    assert updated.end_time == time(12)


def test_delete_with_live_appointment_is_a_conflict(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))
    book_slot(db, doctor.id, at(MONDAY, 9), at(MONDAY, 9, 30), patient_id=1, now=NOW)

    with pytest.raises(ConflictError) as exc_info:
        delete_availability_rule(db, rule.id)

    assert exc_info.value.message == (
        "Cannot delete schedule: 1 appointment exists in this period. "
        "Cancel or reschedule them first."
    )
    assert get_availability_rule(db, rule.id) is not None


def test_delete_after_cancellation(db, doctor):
    rule = create_availability_rule(db, weekly(doctor.id))
    appt = book_slot(db, doctor.id, at(MONDAY, 9), at(MONDAY, 9, 30), patient_id=1, now=NOW)
    cancel_appointment(db, appt.id)

    delete_availability_rule(db, rule.id)

    with pytest.raises(NotFoundError):
        get_availability_rule(db, rule.id)


def test_delete_ignores_appointments_of_other_rules(db, doctor):
    morning = create_availability_rule(db, weekly(doctor.id))
    afternoon = create_availability_rule(db, weekly(doctor.id, start_time=time(14), end_time=time(15)))
    book_slot(db, doctor.id, at(MONDAY, 14), at(MONDAY, 14, 30), patient_id=1, now=NOW)

    delete_availability_rule(db, morning.id)

    assert list_availability_rules(db, doctor.id) == [afternoon]
