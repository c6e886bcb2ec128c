"""
Release/expiry manager: confirm, cancel, and expire reservations.

Every transition goes through ledger_service.commit with the reservation as
the expected owner of each unit. That is what keeps the sweeper and a
confirmation from clobbering each other: whichever commits first changes the
unit rows, and the other one's conditional UPDATE then matches nothing and
rolls back.

  held --confirm--> confirmed      (terminal, never expires)
  held --cancel---> free           (owner only, ignores TTL)
  held --expiry---> free           (expires_at <= now)

Cancelling or expiring something already released is a no-op.
"""

import asyncio
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking_core.core import clock
from booking_core.core.exceptions import Conflict, NotFound, Unauthorized
from booking_core.core.logging import get_logger
from booking_core.core.metrics import record_sweep, record_transition
from booking_core.models import ledger
from booking_core.models.container import Container
from booking_core.models.reservation import (
    CANCELLED, CONFIRMED, EXPIRED, HELD, PAYMENT_PAID, RELEASED_STATUSES, Reservation,
)
from booking_core.services import ledger_service
from booking_core.services.interfaces.publisher import (
    RESERVATION_CANCELLED, RESERVATION_CONFIRMED, RESERVATION_EXPIRED, ReservationEvent,
)
from booking_core.services.publisher_factory import get_publisher

logger = get_logger(__name__)

EXPIRY_BATCH_SIZE = 200


async def _emit(name: str, reservation_id: str, container_id: str, requester_id: str, unit_ids, now: datetime):
    event = ReservationEvent(
        event=name,
        reservation_id=reservation_id,
        container_id=container_id,
        requester_id=requester_id,
        unit_ids=tuple(unit_ids),
        occurred_at=now,
    )
    await get_publisher().publish(event)


async def _load(db: AsyncSession, reservation_id: str) -> Reservation:
    reservation = await db.get(Reservation, reservation_id, populate_existing=True)
    if reservation is None:
        raise NotFound(f"Reservation {reservation_id} not found")
    return reservation


async def get_reservation(db: AsyncSession, reservation_id: str, requester_id: str) -> Reservation:
    """Fetch a reservation owned by the requester."""
    reservation = await _load(db, reservation_id)
    if reservation.requester_id != requester_id:
        logger.warning("reservation_access_denied", reservation_id=reservation_id, requester_id=requester_id)
        raise Unauthorized(f"Reservation {reservation_id} belongs to another requester")
    return reservation


async def list_reservations(
    db: AsyncSession,
    requester_id: str,
    kind: Optional[str] = None,
) -> list[Reservation]:
    """Requester's reservations, newest first. `kind` filters event/lot."""
    query = select(Reservation).where(Reservation.requester_id == requester_id)
    if kind:
        query = query.join(Container, Container.id == Reservation.container_id).where(Container.kind == kind)
    result = await db.execute(query.order_by(Reservation.created_at.desc(), Reservation.id.asc()))
    return list(result.scalars().all())


def qr_payload(kind: str, container_id: str, unit_ids: list[str], reservation_id: str) -> str:
    if kind == "lot":
        return f"PARK-{unit_ids[0]}-{reservation_id}"
    return f"EVENT-{container_id}-{reservation_id}"


async def confirm(db: AsyncSession, reservation_id: str, requester_id: str) -> Reservation:
    """
    Finalize a held reservation (payment completed).

    Raises Conflict once the hold has expired, even if the sweeper has not
    run yet; in that case the units are released on the spot. A busy ledger
    is retried with backoff and a fresh read.
    """
    attempt = 0
    while True:
        attempt += 1
        reservation = await get_reservation(db, reservation_id, requester_id)

        if reservation.status == CONFIRMED:
            return reservation
        if reservation.status in RELEASED_STATUSES:
            raise Conflict(f"Reservation {reservation_id} is {reservation.status}")

        now = clock.utcnow()
        container_id = reservation.container_id
        unit_ids = list(reservation.unit_ids)

        if reservation.expires_at <= now:
            await _expire_one(db, reservation_id, now)
            raise Conflict(f"Reservation {reservation_id} hold expired", unit_ids=unit_ids)

        container = await db.get(Container, container_id)
        reservation.status = CONFIRMED
        reservation.payment_status = PAYMENT_PAID
        reservation.confirmed_at = now
        reservation.qr_code = qr_payload(container.kind, container_id, unit_ids, reservation_id)

        transitions = ledger_service.transitions_for(
            container_id, unit_ids, ledger.HELD, reservation_id, ledger.CONFIRMED, reservation_id
        )
        try:
            await ledger_service.commit(db, transitions)
        except Conflict as exc:
            if ledger_service.can_retry(exc, attempt):
                logger.info("reservation_confirm_retry", reservation_id=reservation_id, attempt=attempt)
                await ledger_service.wait_before_retry(attempt)
                continue
            logger.warning("reservation_confirm_conflict", reservation_id=reservation_id, units=exc.unit_ids)
            raise Conflict(
                f"Reservation {reservation_id} can no longer be confirmed",
                unit_ids=exc.unit_ids,
                retryable=exc.retryable,
            )

        record_transition(CONFIRMED)
        logger.info("reservation_confirmed", reservation_id=reservation_id, container_id=container_id, units=unit_ids)
        await _emit(RESERVATION_CONFIRMED, reservation_id, container_id, requester_id, unit_ids, now)
        return reservation


async def cancel(db: AsyncSession, reservation_id: str, requester_id: str) -> Reservation:
    """
    Requester-initiated release. Idempotent for already released reservations.
    Confirmed reservations are out of reach here (refunds are handled elsewhere).
    """
    attempt = 0
    while True:
        attempt += 1
        reservation = await get_reservation(db, reservation_id, requester_id)

        if reservation.status in RELEASED_STATUSES:
            return reservation
        if reservation.status == CONFIRMED:
            raise Conflict(f"Reservation {reservation_id} is confirmed and cannot be cancelled")

        now = clock.utcnow()
        container_id = reservation.container_id
        unit_ids = list(reservation.unit_ids)

        reservation.status = CANCELLED
        reservation.released_at = now
        transitions = ledger_service.transitions_for(
            container_id, unit_ids, ledger.HELD, reservation_id, ledger.FREE, None
        )
        try:
            await ledger_service.commit(db, transitions)
        except Conflict as exc:
            if ledger_service.can_retry(exc, attempt):
                logger.info("reservation_cancel_retry", reservation_id=reservation_id, attempt=attempt)
                await ledger_service.wait_before_retry(attempt)
                continue
            if exc.retryable:
                raise Conflict(f"Reservation {reservation_id} could not be cancelled, try again", retryable=True)
            # Lost a race with the sweeper or a confirmation; report what won
            reservation = await _load(db, reservation_id)
            if reservation.status in RELEASED_STATUSES:
                return reservation
            raise Conflict(f"Reservation {reservation_id} is {reservation.status} and cannot be cancelled")

        record_transition(CANCELLED)
        logger.info("reservation_cancelled", reservation_id=reservation_id, container_id=container_id, units=unit_ids)
        await _emit(RESERVATION_CANCELLED, reservation_id, container_id, requester_id, unit_ids, now)
        return reservation


async def _expire_one(db: AsyncSession, reservation_id: str, now: datetime) -> bool:
    """Expire a single held reservation. False if something else got to it first."""
    attempt = 0
    while True:
        attempt += 1
        reservation = await db.get(Reservation, reservation_id, populate_existing=True)
        if reservation is None or reservation.status != HELD or reservation.expires_at > now:
            return False

        container_id = reservation.container_id
        requester_id = reservation.requester_id
        unit_ids = list(reservation.unit_ids)

        reservation.status = EXPIRED
        reservation.released_at = now
        transitions = ledger_service.transitions_for(
            container_id, unit_ids, ledger.HELD, reservation_id, ledger.FREE, None
        )
        try:
            await ledger_service.commit(db, transitions)
        except Conflict as exc:
            if ledger_service.can_retry(exc, attempt):
                await ledger_service.wait_before_retry(attempt)
                continue
            logger.info("reservation_expiry_skipped", reservation_id=reservation_id, busy=exc.retryable)
            return False

        record_transition(EXPIRED)
        await _emit(RESERVATION_EXPIRED, reservation_id, container_id, requester_id, unit_ids, now)
        return True


async def expire_due(
    db: AsyncSession,
    container_id: Optional[str] = None,
    now: Optional[datetime] = None,
    trigger: str = "periodic",
) -> int:
    """
    Release every held reservation whose expiry has passed.

    Runs periodically from the sweeper and lazily before reads and
    reservations on a container. Due reservations are read in pages of
    EXPIRY_BATCH_SIZE ordered by (expires_at, id); the cursor moves past
    skipped ones so a reservation that keeps losing races cannot stall the
    sweep. Returns how many reservations expired.
    """
    now = now or clock.utcnow()
    record_sweep(trigger)

    expired = 0
    cursor = None
    while True:
        query = select(Reservation.id, Reservation.expires_at).where(
            Reservation.status == HELD, Reservation.expires_at <= now
        )
        if container_id is not None:
            query = query.where(Reservation.container_id == container_id)
        if cursor is not None:
            last_expires_at, last_id = cursor
            query = query.where(
                or_(
                    Reservation.expires_at > last_expires_at,
                    and_(Reservation.expires_at == last_expires_at, Reservation.id > last_id),
                )
            )
        result = await db.execute(
            query.order_by(Reservation.expires_at.asc(), Reservation.id.asc()).limit(EXPIRY_BATCH_SIZE)
        )
        batch = list(result.all())
        # Close the read so SQLite does not hold its lock while we write
        await db.commit()

        for reservation_id, _ in batch:
            if await _expire_one(db, reservation_id, now):
                expired += 1

        if len(batch) < EXPIRY_BATCH_SIZE:
            break
        cursor = batch[-1]

    if expired:
        logger.info("reservations_expired", count=expired, container_id=container_id, trigger=trigger)
    return expired


async def run_expiry_sweeper(session_factory: async_sessionmaker, interval: float) -> None:
    """Background loop: expire due reservations every `interval` seconds until cancelled."""
    logger.info("expiry_sweeper_started", interval=interval)
    while True:
        try:
            async with session_factory() as db:
                await expire_due(db, trigger="periodic")
        except Exception as e:
            logger.error("expiry_sweep_failed", error=str(e))
        await asyncio.sleep(interval)
