# backend/medbook/schemas/schedule_exceptions.py

from datetime import date, datetime, time
from enum import Enum
from typing import Optional
from pydantic import BaseModel

from ..models.types import ExceptionType


class ExceptionScope(str, Enum):
    ALL_DOCTORS = "all_doctors"
    SELECTED_DOCTORS = "selected_doctors"


class ExceptionReason(str, Enum):
    HOLIDAY = "HOLIDAY"
    LEAVE = "LEAVE"
    EXTRA_HOURS = "EXTRA_HOURS"


class ScheduleExceptionCreate(BaseModel):
    scope: ExceptionScope
    doctor_ids: list[int] = []

    date_from: date
    date_to: Optional[date] = None  # defaults to date_from

    is_full_day: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    type: ExceptionType
    reason: Optional[str] = None
    label: Optional[str] = None

    model_config = {"from_attributes": True}


class ScheduleExceptionRead(BaseModel):
    id: int
    doctor_id: Optional[int] = None

    type: ExceptionType
    date_from: date
    date_to: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    reason: str
    label: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
