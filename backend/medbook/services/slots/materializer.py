# backend/medbook/services/slots/materializer.py
"""
Slot materialization: availability rules + schedule exceptions -> UTC slots.

Pure computation. Everything it needs (rules, exceptions, template,
timezone, now) is passed in; nothing is read from the database or the
system clock, so identical inputs always give identical output.

Pipeline:
  1. Widen the window to whole local days, plus one day either side
  2. Expand RECURRING rules over matching local dates (lazily)
  3. Take ONE_OFF rules that intersect the widened span
  4. Tile every interval into duration + buffer steps (no partial slots)
  5. Remove slots hit by UNAVAILABLE exceptions
  6. Add slots tiled from AVAILABLE exceptions
  7. Dedupe / resolve overlaps (exception slots win), sort by start
  8. Clip to the window, drop slots starting at or before now

Overlaps are resolved before clipping, so a slot is offered for a narrow
window only if a full-day read offers it too.

Does NOT contain:
  ✗ advance_booking_days horizon (caller bounds the window)
  ✗ Existing appointments (filtered by the availability service)
"""

from bisect import bisect_left
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, assert_never

import pytz

from ...models.types import ExceptionType, RuleKind
from .config import day_of_week, ensure_utc, get_timezone, local_to_utc


@dataclass(frozen=True)
class Slot:
    """A bookable interval. Exactly one of rule_id / exception_id is set."""
    doctor_id: int
    start_time: datetime
    end_time: datetime
    rule_id: int | None = None
    exception_id: int | None = None

    @property
    def provenance(self) -> str:
        if self.exception_id is not None:
            return f"exception:{self.exception_id}"
        return f"rule:{self.rule_id}"

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and start < self.end_time


def materialize(
    doctor_id: int,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    *,
    rules: Iterable,
    exceptions: Iterable,
    template,
    timezone: str | pytz.BaseTzInfo | None = None,
) -> list[Slot]:
    """
    Materialize bookable slots for one doctor inside [window_start, window_end].

    Args:
        doctor_id: Doctor whose slots are produced; other doctors' rules are ignored
        window_start, window_end: Query window (UTC instants)
        now: Past-time cutoff; slots starting at or before it are dropped
        rules: AvailabilityRules-like objects
        exceptions: ScheduleExceptions-like objects (doctor-specific or global)
        template: Object with duration_minutes and buffer_minutes
        timezone: Doctor's calendar for wall-clock times and date-only bounds

    Returns:
        Slots ordered by start, unique by start and non-overlapping.
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    now = ensure_utc(now)
    tz = timezone if isinstance(timezone, pytz.BaseTzInfo) else get_timezone(timezone)

    if window_end <= window_start:
        return []

    duration = timedelta(minutes=template.duration_minutes)
    buffer = timedelta(minutes=template.buffer_minutes)

    def keep(slot: Slot) -> bool:
        return (
            window_start <= slot.start_time
            and slot.end_time <= window_end
            and slot.start_time > now
        )

    # Step 1
    span_start, span_end = candidate_span(tz, window_start, window_end)
    first_day = window_start.astimezone(tz).date() - timedelta(days=1)
    last_day = window_end.astimezone(tz).date() + timedelta(days=1)

    # Steps 2-4: rule slots, whole occurrences
    rule_slots: list[Slot] = []
    for rule in rules:
        if rule.doctor_id != doctor_id:
            continue
        for start, end in rule_occurrences(rule, tz, span_start, span_end):
            for slot_start, slot_end in tile(start, end, duration, buffer):
                rule_slots.append(Slot(doctor_id, slot_start, slot_end, rule_id=rule.id))

    unavailable = []
    extra_slots: list[Slot] = []
    for exc in exceptions:
        if exc.doctor_id is not None and exc.doctor_id != doctor_id:
            continue
        match exc.type:
            case ExceptionType.UNAVAILABLE:
                unavailable.append(exc)
            case ExceptionType.AVAILABLE:
                # Step 6: additive, independent of rule matching
                for day in iter_dates(max(exc.date_from, first_day), min(exc.date_to, last_day)):
                    start, end = exception_window(exc, tz, day)
                    for slot_start, slot_end in tile(start, end, duration, buffer):
                        extra_slots.append(
                            Slot(doctor_id, slot_start, slot_end, exception_id=exc.id)
                        )
            case _:
                assert_never(exc.type)

    # Step 5: closures only remove rule-derived slots
    if unavailable:
        rule_slots = [
            slot for slot in rule_slots
            if not _is_blocked(slot, unavailable, tz)
        ]

    # Steps 7-8
    return [slot for slot in _resolve_overlaps(extra_slots + rule_slots) if keep(slot)]


# ── Interval expansion ───────────────────────────────────────────────────


def candidate_span(
    tz: pytz.BaseTzInfo,
    window_start: datetime,
    window_end: datetime,
) -> tuple[datetime, datetime]:
    """
    UTC span whose slots compete for the window.

    Runs from local midnight the day before the window's first local date
    to local midnight two days after its last one. Rules are at most a day
    long, so only a day-long chain of overlapping slots could reach past it.
    """
    first_day = window_start.astimezone(tz).date() - timedelta(days=1)
    last_day = window_end.astimezone(tz).date() + timedelta(days=1)
    return (
        local_to_utc(tz, datetime.combine(first_day, time.min)),
        local_to_utc(tz, datetime.combine(last_day + timedelta(days=1), time.min)),
    )


def iter_dates(first: date, last: date) -> Iterator[date]:
    """Yield every date in [first, last]; nothing when last < first."""
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


def rule_occurrences(
    rule,
    tz: pytz.BaseTzInfo,
    window_start: datetime,
    window_end: datetime,
) -> Iterator[tuple[datetime, datetime]]:
    """
    Yield the rule's absolute UTC intervals that intersect the window.

    RECURRING rules are expanded date by date, bounded by
    [valid_from, valid_to] and the window's local dates, so an open-ended
    rule never produces more than the window needs.
    """
    match rule.kind:
        case RuleKind.ONE_OFF:
            if rule.starts_at is None or rule.ends_at is None:
                return
            start, end = ensure_utc(rule.starts_at), ensure_utc(rule.ends_at)
            if start < window_end and end > window_start:
                yield start, end

        case RuleKind.RECURRING:
            if rule.day_of_week is None or rule.valid_from is None:
                return
            if rule.start_time is None or rule.end_time is None:
                return
            first = max(rule.valid_from, window_start.astimezone(tz).date())
            last = window_end.astimezone(tz).date()
            if rule.valid_to is not None:
                last = min(last, rule.valid_to)

            for day in iter_dates(first, last):
                if day_of_week(day) != rule.day_of_week:
                    continue
                start = local_to_utc(tz, datetime.combine(day, rule.start_time))
                end = local_to_utc(tz, datetime.combine(day, rule.end_time))
                if start < window_end and end > window_start:
                    yield start, end

        case _:
            assert_never(rule.kind)


def tile(
    start: datetime,
    end: datetime,
    duration: timedelta,
    buffer: timedelta,
) -> Iterator[tuple[datetime, datetime]]:
    """Cut [start, end) into duration-long pieces separated by buffer."""
    if duration <= timedelta(0) or end <= start:
        return
    step = duration + buffer
    current = start
    while current + duration <= end:
        yield current, current + duration
        current += step


def exception_window(exc, tz: pytz.BaseTzInfo, day: date) -> tuple[datetime, datetime]:
    """UTC interval an exception covers on a local date (whole day without times)."""
    if exc.start_time is None or exc.end_time is None:
        start = local_to_utc(tz, datetime.combine(day, datetime.min.time()))
        end = local_to_utc(tz, datetime.combine(day + timedelta(days=1), datetime.min.time()))
        return start, end
    return (
        local_to_utc(tz, datetime.combine(day, exc.start_time)),
        local_to_utc(tz, datetime.combine(day, exc.end_time)),
    )


def rule_overlaps(rule, tz: pytz.BaseTzInfo, start: datetime, end: datetime) -> bool:
    """True when any occurrence of rule overlaps [start, end)."""
    return any(True for _ in rule_occurrences(rule, tz, start, end))


def rule_covers(rule, tz: pytz.BaseTzInfo, start: datetime, end: datetime) -> bool:
    """True when a single occurrence of rule fully contains [start, end)."""
    return any(
        occ_start <= start and end <= occ_end
        for occ_start, occ_end in rule_occurrences(rule, tz, start, end)
    )


# ── Exceptions and overlap resolution ────────────────────────────────────


def _is_blocked(slot: Slot, closures: list, tz: pytz.BaseTzInfo) -> bool:
    """
    Check whether any UNAVAILABLE exception removes the slot.

    Every local date the slot touches counts, so a slot running past
    midnight is closed by a closure on the following day.
    """
    first = slot.start_time.astimezone(tz).date()
    last = (slot.end_time - timedelta(microseconds=1)).astimezone(tz).date()
    for exc in closures:
        for day in iter_dates(max(exc.date_from, first), min(exc.date_to, last)):
            if exc.start_time is None or exc.end_time is None:
                return True
            if slot.overlaps(*exception_window(exc, tz, day)):
                return True
    return False


def _resolve_overlaps(candidates: list[Slot]) -> list[Slot]:
    """
    Keep a non-overlapping subset ordered by start.

    Exception-derived slots claim time first, then rule-derived ones, each
    group in start order. A slot sharing a start with a kept slot is dropped,
    so an exception slot replaces a rule slot at the same start.
    """
    ordered = sorted(
        candidates,
        key=lambda s: (
            s.exception_id is None,
            s.start_time,
            s.end_time,
            s.exception_id or 0,
            s.rule_id or 0,
        ),
    )

    starts: list[datetime] = []
    kept: list[Slot] = []
    for slot in ordered:
        i = bisect_left(starts, slot.start_time)
        if i > 0 and kept[i - 1].end_time > slot.start_time:
            continue
        if i < len(kept) and kept[i].start_time < slot.end_time:
            continue
        starts.insert(i, slot.start_time)
        kept.insert(i, slot)

    return kept
