# backend/medbook/schemas/slots.py
"""
Pydantic schemas for materialized slots.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    """A single bookable slot (UTC)."""
    doctor_id: int
    start_time: datetime
    end_time: datetime
    rule_id: Optional[int] = None
    exception_id: Optional[int] = None
    provenance: str = Field(description="'rule:<id>' or 'exception:<id>'")

    model_config = {"from_attributes": True}

