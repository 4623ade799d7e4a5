# backend/medbook/services/slots/__init__.py
"""
Slots module.

Materializer: pure expansion of rules + exceptions into UTC slots
Availability: database-backed wrapper (horizon, booked-slot filtering)
Templates: per-doctor slot sizing with defaults
"""

from .config import SchedulingConfig, get_scheduling_config
from .materializer import Slot, materialize
from .templates import resolve_slot_template, upsert_slot_template
from .availability import get_available_slots, find_available_slot

__all__ = [
    "SchedulingConfig",
    "get_scheduling_config",
    "Slot",
    "materialize",
    "resolve_slot_template",
    "upsert_slot_template",
    "get_available_slots",
    "find_available_slot",
]
