from .scheduling import (
    Appointments,
    AvailabilityRules,
    Base,
    Doctors,
    ScheduleExceptions,
    SlotTemplates,
    metadata,
)
from .types import (
    LIVE_STATUSES,
    AppointmentStatus,
    ExceptionType,
    RuleKind,
    UTCDateTime,
)

__all__ = [
    "Base",
    "metadata",
    "Doctors",
    "AvailabilityRules",
    "SlotTemplates",
    "ScheduleExceptions",
    "Appointments",
    "AppointmentStatus",
    "ExceptionType",
    "RuleKind",
    "UTCDateTime",
    "LIVE_STATUSES",
]
