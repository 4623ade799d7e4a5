# backend/medbook/schemas/slot_templates.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class SlotTemplateUpsert(BaseModel):
    doctor_id: int
    duration_minutes: Optional[int] = None
    buffer_minutes: Optional[int] = None
    advance_booking_days: Optional[int] = None

    model_config = {"from_attributes": True}


class SlotTemplateRead(BaseModel):
    doctor_id: int
    duration_minutes: int
    buffer_minutes: int
    advance_booking_days: int

    # True when no template is stored and the defaults apply
    is_default: bool = False
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
