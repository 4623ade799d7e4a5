# backend/medbook/schemas/appointments.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from ..models.types import AppointmentStatus


class AppointmentRead(BaseModel):
    id: int

    doctor_id: int
    patient_id: int

    start_time: datetime
    end_time: datetime

    status: AppointmentStatus
    rule_id: Optional[int] = None
    exception_id: Optional[int] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
