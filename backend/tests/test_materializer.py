"""Tests for pure slot materialization."""

from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

import pytest
import pytz

from conftest import MONDAY, NOW, at
from medbook.models import ExceptionType, RuleKind
from medbook.schemas.slots import SlotRead
from medbook.services.slots.config import SchedulingConfig, day_of_week
from medbook.services.slots.materializer import Slot, materialize, tile

TEMPLATE = SimpleNamespace(duration_minutes=30, buffer_minutes=0)


def recurring(rule_id=1, doctor_id=1, day=1, start=time(9), end=time(10),
              valid_from=date(2030, 1, 1), valid_to=None):
    return SimpleNamespace(
        id=rule_id, doctor_id=doctor_id, kind=RuleKind.RECURRING,
        day_of_week=day, start_time=start, end_time=end,
        valid_from=valid_from, valid_to=valid_to,
        starts_at=None, ends_at=None,
    )


def one_off(rule_id, starts_at, ends_at, doctor_id=1):
    return SimpleNamespace(
        id=rule_id, doctor_id=doctor_id, kind=RuleKind.ONE_OFF,
        day_of_week=None, start_time=None, end_time=None,
        valid_from=None, valid_to=None,
        starts_at=starts_at, ends_at=ends_at,
    )


def exception(exc_id, type, date_from, date_to=None, start=None, end=None, doctor_id=1):
    return SimpleNamespace(
        id=exc_id, doctor_id=doctor_id, type=type,
        date_from=date_from, date_to=date_to or date_from,
        start_time=start, end_time=end,
    )


def run(rules=(), exceptions=(), start=None, end=None, now=NOW, template=TEMPLATE, tz=None):
    start = start or at(MONDAY, 0)
    end = end or at(MONDAY + timedelta(days=1), 0)
    return materialize(1, start, end, now, rules=rules, exceptions=exceptions, template=template, timezone=tz)


def starts(slots):
    return [s.start_time for s in slots]


# ── Rules ────────────────────────────────────────────────────────────────


def test_one_hour_rule_gives_two_slots():
    slots = run(rules=[recurring()])

    assert starts(slots) == [at(MONDAY, 9), at(MONDAY, 9, 30)]
    assert [s.end_time for s in slots] == [at(MONDAY, 9, 30), at(MONDAY, 10)]
    assert all(s.rule_id == 1 and s.exception_id is None for s in slots)
    assert slots[0].provenance == "rule:1"


def test_recurring_rule_only_on_its_weekday_within_validity():
    rule = recurring(valid_from=date(2030, 1, 8), valid_to=date(2030, 1, 21))

    slots = run(rules=[rule], start=at(date(2030, 1, 6), 0), end=at(date(2030, 1, 28), 0))

    assert {s.start_time.date() for s in slots} == {date(2030, 1, 14), date(2030, 1, 21)}
    assert all(day_of_week(s.start_time) == 1 for s in slots)
    assert len(slots) == 4


def test_open_ended_rule_is_bounded_by_window():
    slots = run(rules=[recurring(valid_to=None)], start=at(date(2031, 3, 1), 0), end=at(date(2031, 3, 15), 0))

    assert len(slots) == 4  # two Mondays in the window
    assert all(date(2031, 3, 1) <= s.start_time.date() < date(2031, 3, 15) for s in slots)


def test_one_off_rule():
    rule = one_off(3, at(MONDAY, 14), at(MONDAY, 15))

    slots = run(rules=[rule])

    assert starts(slots) == [at(MONDAY, 14), at(MONDAY, 14, 30)]
    assert {s.rule_id for s in slots} == {3}


def test_rules_of_other_doctors_are_ignored():
    assert run(rules=[recurring(doctor_id=2)]) == []


def test_degenerate_intervals_yield_nothing():
    rules = [
        one_off(1, at(MONDAY, 10), at(MONDAY, 10)),
        one_off(2, at(MONDAY, 11), at(MONDAY, 10)),
        recurring(rule_id=3, start=time(12), end=time(11)),
    ]

    assert run(rules=rules) == []


def test_interval_shorter_than_duration_yields_nothing():
    assert run(rules=[recurring(start=time(9), end=time(9, 20))]) == []


def test_partial_tail_is_not_emitted():
    slots = run(rules=[recurring(start=time(9), end=time(10, 10))])

    assert starts(slots) == [at(MONDAY, 9), at(MONDAY, 9, 30)]


def test_buffer_between_slots():
    template = SimpleNamespace(duration_minutes=30, buffer_minutes=15)

    slots = run(rules=[recurring(start=time(9), end=time(11))], template=template)

    assert starts(slots) == [at(MONDAY, 9), at(MONDAY, 9, 45), at(MONDAY, 10, 30)]


def test_slots_starting_at_or_before_now_are_dropped():
    slots = run(rules=[recurring()], now=at(MONDAY, 9))

    assert starts(slots) == [at(MONDAY, 9, 30)]


def test_slots_are_clipped_to_window():
    slots = run(rules=[recurring(start=time(9), end=time(11))], start=at(MONDAY, 9, 15), end=at(MONDAY, 10, 45))

    assert starts(slots) == [at(MONDAY, 9, 30), at(MONDAY, 10)]


def test_empty_window():
    assert run(rules=[recurring()], start=at(MONDAY, 10), end=at(MONDAY, 9)) == []


# ── Exceptions ───────────────────────────────────────────────────────────


def test_partial_closure_removes_overlapping_slots():
    closure = exception(1, ExceptionType.UNAVAILABLE, MONDAY, start=time(9, 15), end=time(9, 45))

    assert run(rules=[recurring()], exceptions=[closure]) == []


def test_partial_closure_keeps_untouched_slots():
    closure = exception(1, ExceptionType.UNAVAILABLE, MONDAY, start=time(9), end=time(9, 30))

    slots = run(rules=[recurring()], exceptions=[closure])

    assert starts(slots) == [at(MONDAY, 9, 30)]


def test_global_whole_day_closure():
    closure = exception(1, ExceptionType.UNAVAILABLE, date(2030, 1, 5), date(2030, 1, 10), doctor_id=None)

    assert run(rules=[recurring()], exceptions=[closure]) == []


def test_closure_for_other_doctor_is_ignored():
    closure = exception(1, ExceptionType.UNAVAILABLE, MONDAY, doctor_id=2)

    assert len(run(rules=[recurring()], exceptions=[closure])) == 2


def test_closure_on_other_day_is_ignored():
    closure = exception(1, ExceptionType.UNAVAILABLE, MONDAY + timedelta(days=1))

    assert len(run(rules=[recurring()], exceptions=[closure])) == 2


def test_available_exception_adds_slots_without_rules():
    extra = exception(7, ExceptionType.AVAILABLE, MONDAY, start=time(14), end=time(15))

    slots = run(exceptions=[extra])

    assert starts(slots) == [at(MONDAY, 14), at(MONDAY, 14, 30)]
    assert all(s.exception_id == 7 and s.rule_id is None for s in slots)
    assert slots[0].provenance == "exception:7"


def test_available_exception_replaces_rule_slot_at_same_start():
    extra = exception(5, ExceptionType.AVAILABLE, MONDAY, start=time(9), end=time(9, 30))

    slots = run(rules=[recurring()], exceptions=[extra])

    assert starts(slots) == [at(MONDAY, 9), at(MONDAY, 9, 30)]
    assert slots[0].exception_id == 5
    assert slots[1].rule_id == 1


def test_closure_does_not_suppress_extra_hours():
    closure = exception(1, ExceptionType.UNAVAILABLE, MONDAY)
    extra = exception(2, ExceptionType.AVAILABLE, MONDAY, start=time(14), end=time(15))

    slots = run(rules=[recurring()], exceptions=[closure, extra])

    assert starts(slots) == [at(MONDAY, 14), at(MONDAY, 14, 30)]
    assert all(s.exception_id == 2 for s in slots)


def test_closure_on_next_day_blocks_slot_crossing_midnight():
    tuesday = MONDAY + timedelta(days=1)
    hour = SimpleNamespace(duration_minutes=60, buffer_minutes=0)
    late = one_off(1, at(MONDAY, 23, 30), at(tuesday, 0, 30))

    def slots_with(closure):
        return run(rules=[late], exceptions=[closure], end=at(tuesday, 12), template=hour)

    assert slots_with(exception(2, ExceptionType.UNAVAILABLE, tuesday)) == []
    assert slots_with(exception(2, ExceptionType.UNAVAILABLE, tuesday, start=time(0), end=time(0, 15))) == []
    assert starts(slots_with(exception(2, ExceptionType.UNAVAILABLE, tuesday + timedelta(days=1)))) == [
        at(MONDAY, 23, 30)
    ]


# ── Output invariants ────────────────────────────────────────────────────


def test_overlapping_rules_never_produce_overlapping_slots():
    rules = [
        recurring(rule_id=1, start=time(9), end=time(10)),
        one_off(2, at(MONDAY, 9, 15), at(MONDAY, 10, 15)),
    ]

    slots = run(rules=rules)

    assert starts(slots) == sorted(starts(slots))
    for a, b in zip(slots, slots[1:]):
        assert a.end_time <= b.start_time
    assert starts(slots) == [at(MONDAY, 9), at(MONDAY, 9, 30)]


def test_duplicate_rules_are_deduplicated():
    slots = run(rules=[recurring(rule_id=1), recurring(rule_id=2)])

    assert starts(slots) == [at(MONDAY, 9), at(MONDAY, 9, 30)]
    assert {s.rule_id for s in slots} == {1}


def test_materialize_is_idempotent():
    rules = [recurring(), one_off(2, at(MONDAY, 13), at(MONDAY, 14))]
    exceptions = [exception(3, ExceptionType.UNAVAILABLE, MONDAY, start=time(13), end=time(13, 30))]

    assert run(rules=rules, exceptions=exceptions) == run(rules=rules, exceptions=exceptions)


def test_narrow_window_agrees_with_full_day():
    rules = [
        recurring(rule_id=1),
        recurring(rule_id=2, start=time(9, 15), end=time(10, 15)),
        one_off(4, at(MONDAY, 11), at(MONDAY, 12)),
    ]
    extra = exception(3, ExceptionType.AVAILABLE, MONDAY, start=time(11, 15), end=time(11, 45))
    full = run(rules=rules, exceptions=[extra])

    assert [(s.start_time, s.provenance) for s in full] == [
        (at(MONDAY, 9), "rule:1"),
        (at(MONDAY, 9, 30), "rule:1"),
        (at(MONDAY, 11, 15), "exception:3"),
    ]
    for minute in range(9 * 60, 12 * 60, 15):
        start = at(MONDAY, minute // 60, minute % 60)
        narrow = run(rules=rules, exceptions=[extra], start=start, end=start + timedelta(minutes=30))
        assert narrow == [s for s in full if s.start_time == start]


# ── Timezones ────────────────────────────────────────────────────────────


def test_recurring_times_are_local_to_doctor():
    slots = run(rules=[recurring()], tz="America/New_York")

    # 09:00 EST == 14:00 UTC
    assert starts(slots) == [at(MONDAY, 14), at(MONDAY, 14, 30)]


def test_recurring_times_follow_daylight_saving():
    summer_monday = date(2030, 7, 1)

    slots = run(
        rules=[recurring()],
        start=at(summer_monday, 0),
        end=at(summer_monday + timedelta(days=1), 0),
        tz=pytz.timezone("Europe/Berlin"),
    )

    # 09:00 CEST == 07:00 UTC
    assert starts(slots) == [at(summer_monday, 7), at(summer_monday, 7, 30)]


def test_whole_day_closure_uses_local_day():
    # Local Monday in Tokyo runs from Sunday 15:00 to Monday 15:00 UTC
    rule = one_off(1, at(MONDAY, 14), at(MONDAY, 16))
    closure = exception(1, ExceptionType.UNAVAILABLE, MONDAY)

    slots = run(rules=[rule], exceptions=[closure], tz="Asia/Tokyo")

    assert starts(slots) == [at(MONDAY, 15), at(MONDAY, 15, 30)]


# ── Helpers and config ───────────────────────────────────────────────────


def test_tile():
    pieces = list(tile(at(MONDAY, 9), at(MONDAY, 10), timedelta(minutes=20), timedelta(minutes=5)))

    assert pieces == [
        (at(MONDAY, 9), at(MONDAY, 9, 20)),
        (at(MONDAY, 9, 25), at(MONDAY, 9, 45)),
    ]


def test_day_of_week_counts_from_sunday():
    assert day_of_week(date(2030, 1, 6)) == 0
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2030, 1, 12)) == 6


def test_slot_overlaps():
    slot = Slot(1, at(MONDAY, 9), at(MONDAY, 9, 30), rule_id=1)

    assert slot.overlaps(at(MONDAY, 9, 15), at(MONDAY, 10))
    assert not slot.overlaps(at(MONDAY, 9, 30), at(MONDAY, 10))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"default_duration_minutes": 4},
        {"default_buffer_minutes": -1},
        {"default_advance_booking_days": 0},
        {"default_timezone": "Mars/Olympus"},
    ],
)
def test_scheduling_config_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        SchedulingConfig(**kwargs)


def test_naive_window_is_taken_as_utc():
    naive_start = datetime(2030, 1, 7, 0, 0)
    naive_end = datetime(2030, 1, 8, 0, 0)

    slots = materialize(1, naive_start, naive_end, NOW, rules=[recurring()], exceptions=[], template=TEMPLATE)

    assert slots[0].start_time == at(MONDAY, 9)
    assert slots[0].start_time.utcoffset() == timedelta(0)


def test_slot_serializes_with_provenance():
    slot = run(rules=[recurring(rule_id=4)])[0]

    read = SlotRead.model_validate(slot)

    assert read.provenance == "rule:4"
    assert read.start_time == at(MONDAY, 9)
    assert read.exception_id is None
