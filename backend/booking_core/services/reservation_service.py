"""
Allocator: all-or-nothing free -> held for a set of units.

CONCURRENCY STRATEGY: Conditional commit with bounded retry
===========================================================

Problem:
  The seat map a user picks from is already stale when they press "book".
  Writing the booking without re-checking each seat double-sells seats, and
  decrementing a separate "available" counter lets that counter drift from
  the per-seat truth.

Solution:
  1. Validate the request (non-empty, within MAX_UNITS_PER_RESERVATION,
     known container and units) before touching the ledger
  2. Lazily expire stale holds on the container so they do not block us
  3. Insert the reservation and conditionally move every unit free -> held
     in one ledger commit (see ledger_service)
  4. If the commit names conflicting units, re-read them:
       - any unit not free  -> PartiallyUnavailable(those units)
       - all free again     -> a holder released meanwhile; retry
     Transient lock errors are retried the same way
  5. Retries back off exponentially with jitter and stop after
     COMMIT_MAX_RETRIES, surfacing Conflict

  Requests are never queued: each call ends in a hold, a typed failure, or
  Conflict after a bounded number of attempts.
"""

import time
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core import clock
from booking_core.core.config import get_settings
from booking_core.core.exceptions import (
    Conflict, Empty, InvalidRequest, NotFound, PartiallyUnavailable, ReservationError, TooMany,
)
from booking_core.core.logging import get_logger
from booking_core.core.metrics import record_reservation_attempt, reserve_latency
from booking_core.models import ledger
from booking_core.models.reservation import HELD, PAYMENT_PENDING, Reservation
from booking_core.services import catalog_service, ledger_service, release_service

logger = get_logger(__name__)


def _resolve_ttl(ttl_seconds: Optional[int]) -> int:
    settings = get_settings()
    if ttl_seconds is None:
        return settings.HOLD_TTL_SECONDS
    if ttl_seconds <= 0 or ttl_seconds > settings.MAX_HOLD_TTL_SECONDS:
        raise InvalidRequest(f"ttl_seconds must be between 1 and {settings.MAX_HOLD_TTL_SECONDS}")
    return ttl_seconds


async def reserve(
    db: AsyncSession,
    container_id: str,
    unit_ids: Iterable[str],
    requester_id: str,
    ttl_seconds: Optional[int] = None,
    vehicle_number: Optional[str] = None,
) -> Reservation:
    """
    Hold `unit_ids` in `container_id` for `requester_id`.

    Raises Empty, TooMany, NotFound, InvalidRequest before any ledger write;
    PartiallyUnavailable naming taken units; Conflict when retries run out.
    """
    start = time.perf_counter()
    try:
        reservation = await _reserve(db, container_id, unit_ids, requester_id, ttl_seconds, vehicle_number)
    except PartiallyUnavailable:
        record_reservation_attempt("unavailable")
        raise
    except Conflict:
        record_reservation_attempt("conflict")
        raise
    except ReservationError:
        record_reservation_attempt("rejected")
        raise
    except Exception:
        record_reservation_attempt("error")
        raise
    finally:
        reserve_latency.observe(time.perf_counter() - start)

    record_reservation_attempt("held")
    return reservation


async def _reserve(
    db: AsyncSession,
    container_id: str,
    unit_ids: Iterable[str],
    requester_id: str,
    ttl_seconds: Optional[int],
    vehicle_number: Optional[str],
) -> Reservation:
    settings = get_settings()
    requested = sorted(set(unit_ids))

    if not requested:
        raise Empty()
    if len(requested) > settings.MAX_UNITS_PER_RESERVATION:
        raise TooMany(settings.MAX_UNITS_PER_RESERVATION)
    ttl = _resolve_ttl(ttl_seconds)

    container = await catalog_service.get_container(db, container_id)
    if not container.is_active:
        raise NotFound(f"Container {container_id} is not open for reservations")
    if container.kind == "lot":
        vehicle_number = (vehicle_number or "").strip().upper()
        if not vehicle_number:
            raise InvalidRequest("A vehicle number is required for parking reservations")
    else:
        vehicle_number = None

    units = await catalog_service.get_units(db, container_id, requested)
    total = sum((Decimal(units[u].price) for u in requested), Decimal("0"))

    await release_service.expire_due(db, container_id=container_id, trigger="lazy")

    attempt = 0
    while True:
        attempt += 1
        reservation_id = str(uuid.uuid4())
        now = clock.utcnow()
        reservation = Reservation(
            id=reservation_id,
            container_id=container_id,
            requester_id=requester_id,
            unit_ids=requested,
            status=HELD,
            payment_status=PAYMENT_PENDING,
            total_amount=total,
            vehicle_number=vehicle_number,
            expires_at=now + timedelta(seconds=ttl),
            created_at=now,
            updated_at=now,
        )
        transitions = ledger_service.transitions_for(
            container_id, requested, ledger.FREE, None, ledger.HELD, reservation_id
        )

        try:
            await ledger_service.commit(db, transitions, pending=[reservation])
        except Conflict as exc:
            if exc.unit_ids:
                current = await ledger_service.states(db, container_id, exc.unit_ids)
                taken = [u for u in exc.unit_ids if current.get(u) != ledger.FREE]
                if taken:
                    logger.info(
                        "reservation_unavailable",
                        container_id=container_id,
                        requester_id=requester_id,
                        unavailable=taken,
                    )
                    raise PartiallyUnavailable(taken)

            logger.info(
                "reservation_retry",
                container_id=container_id,
                attempt=attempt,
                reason="busy" if exc.retryable else "released_during_commit",
            )
            if attempt >= settings.COMMIT_MAX_RETRIES:
                logger.warning("reservation_conflict", container_id=container_id, requester_id=requester_id)
                raise Conflict("Reservation failed due to high demand. Please try again.", unit_ids=exc.unit_ids)
            await ledger_service.wait_before_retry(attempt)
            continue

        logger.info(
            "reservation_held",
            reservation_id=reservation_id,
            container_id=container_id,
            requester_id=requester_id,
            units=requested,
            expires_at=reservation.expires_at.isoformat(),
            attempt=attempt,
        )
        return reservation

