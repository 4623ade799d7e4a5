# backend/medbook/schemas/availability_rules.py

from datetime import date, datetime, time
from typing import Optional
from pydantic import BaseModel, Field

from ..models.types import RuleKind


class AvailabilityRuleCreate(BaseModel):
    doctor_id: int
    kind: RuleKind

    # RECURRING
    day_of_week: Optional[int] = Field(None, description="0 = Sunday ... 6 = Saturday")
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None

    # ONE_OFF
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailabilityRuleUpdate(BaseModel):
    kind: Optional[RuleKind] = None
    day_of_week: Optional[int] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailabilityRuleRead(BaseModel):
    id: int
    doctor_id: int
    kind: RuleKind

    day_of_week: Optional[int] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TimeSpec(BaseModel):
    """Wall-clock window in the doctor's timezone, e.g. 09:00-09:30."""
    start: time
    end: time


class BatchResult(BaseModel):
    """Outcome of a best-effort bulk creation."""
    requested: int
    created: int
    failed: int
    skipped: int
    first_error: Optional[str] = None
    rules: list[AvailabilityRuleRead] = []

    model_config = {"from_attributes": True}
