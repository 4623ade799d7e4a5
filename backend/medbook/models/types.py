# backend/medbook/models/types.py
"""
Column types and enums shared by the scheduling tables.
"""

import enum
from datetime import datetime

import pytz
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class RuleKind(str, enum.Enum):
    RECURRING = "recurring"
    ONE_OFF = "one_off"


class ExceptionType(str, enum.Enum):
    UNAVAILABLE = "unavailable"
    AVAILABLE = "available"


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


LIVE_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.NO_SHOW,
)


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UTCDateTime(TypeDecorator):
    """
    Stores instants as naive UTC and hands back aware UTC datetimes.

    Naive values on the way in are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(pytz.UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=pytz.UTC)
