"""
Reservation error taxonomy.

Services raise these instead of HTTPException so the same rules apply to the
HTTP layer, the expiry sweeper, and direct callers. Each error knows its HTTP
status and a stable machine-readable code; api/errors.py renders them.

Conflict and PartiallyUnavailable are expected outcomes under contention: the
caller re-reads availability and lets the user pick again.
"""

from typing import Iterable


class ReservationError(Exception):
    """Base error with a message, HTTP status and stable code."""

    status_code: int = 400
    code: str = "reservation_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def extra(self) -> dict:
        """Additional fields merged into the error response body."""
        return {}


class Conflict(ReservationError):
    """A ledger precondition failed or the current state forbids the transition."""

    status_code = 409
    code = "conflict"

    def __init__(self, message: str, unit_ids: Iterable[str] = (), retryable: bool = False):
        self.unit_ids = sorted(set(unit_ids))
        self.retryable = retryable
        super().__init__(message)

    def extra(self) -> dict:
        return {"unit_ids": self.unit_ids} if self.unit_ids else {}


class PartiallyUnavailable(ReservationError):
    status_code = 409
    code = "partially_unavailable"

    def __init__(self, unit_ids: Iterable[str]):
        self.unit_ids = sorted(set(unit_ids))
        super().__init__(f"Units no longer available: {', '.join(self.unit_ids)}")

    def extra(self) -> dict:
        return {"unavailable": self.unit_ids}


class TooMany(ReservationError):
    status_code = 422
    code = "too_many_units"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"A reservation may hold at most {limit} units")

    def extra(self) -> dict:
        return {"limit": self.limit}


class Empty(ReservationError):
    status_code = 422
    code = "empty_reservation"

    def __init__(self):
        super().__init__("At least one unit must be requested")


class NotFound(ReservationError):
    status_code = 404
    code = "not_found"

    def __init__(self, message: str, unit_ids: Iterable[str] = ()):
        self.unit_ids = sorted(set(unit_ids))
        super().__init__(message)

    def extra(self) -> dict:
        return {"unit_ids": self.unit_ids} if self.unit_ids else {}


class Unauthorized(ReservationError):
    """The requester does not own the reservation."""

    status_code = 403
    code = "unauthorized"


class InvalidRequest(ReservationError):
    status_code = 422
    code = "invalid_request"
