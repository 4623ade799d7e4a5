"""
Scheduling error taxonomy.

Every error carries a machine code and the HTTP status an adapter should
answer with. CONFLICT and SLOT_UNAVAILABLE are surfaced to the caller as-is;
nothing in the core retries them.
"""


class SchedulingError(Exception):
    code = "SCHEDULING_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(SchedulingError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(SchedulingError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(SchedulingError):
    code = "CONFLICT"
    status_code = 409


class SlotUnavailableError(SchedulingError):
    code = "SLOT_UNAVAILABLE"
    status_code = 409

    def __init__(self, message: str = "Slot is not available for booking"):
        super().__init__(message)
