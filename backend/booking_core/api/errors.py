"""
Exception handlers mapping reservation errors to HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from booking_core.core.exceptions import Conflict, PartiallyUnavailable, ReservationError
from booking_core.core.logging import get_logger

logger = get_logger(__name__)


async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    """Render a ReservationError as {"detail", "code", ...extra}."""
    if isinstance(exc, (Conflict, PartiallyUnavailable)):
        # Expected under contention; the client re-reads availability
        logger.info("reservation_rejected", code=exc.code, detail=exc.message)
    else:
        logger.warning("reservation_error", code=exc.code, detail=exc.message, status_code=exc.status_code)

    body = {"detail": exc.message, "code": exc.code}
    body.update(exc.extra())
    return JSONResponse(status_code=exc.status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReservationError, reservation_error_handler)
