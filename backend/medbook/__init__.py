"""
MedBook scheduling core.

Availability rules, slot templates and schedule exceptions are materialized
into bookable slots; appointments claim slots one at a time.
"""

__version__ = "0.1.0"
