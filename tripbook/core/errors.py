"""Error taxonomy for the booking engine.

Services raise these; ``tripbook.main`` renders them as ``{"error": ...}``
JSON with the class's status code.
"""
from typing import Any, Optional


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str, *, details: Any = None, hint: Optional[str] = None, extra: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint
        self.extra = extra or {}

    def to_dict(self) -> dict:
        body: dict = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        if self.hint:
            body["hint"] = self.hint
        body.update(self.extra)
        return body


class ValidationError(BookingError):
    status_code = 400


class NotFound(BookingError):
    status_code = 404


class Unauthorized(BookingError):
    status_code = 401


class Forbidden(BookingError):
    status_code = 403


class CapacityExceeded(BookingError):
    status_code = 409


class StateConflict(BookingError):
    status_code = 400


class GatewayError(BookingError):
    """Razorpay call failed (HTTP error, transport error or unexpected payload)."""
    status_code = 502


class PersistenceError(BookingError):
    status_code = 500


class DuplicateId(PersistenceError):
    pass
