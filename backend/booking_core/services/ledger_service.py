"""
Reservation ledger: per-unit state with compare-and-swap commits.

CONCURRENCY STRATEGY: Conditional writes in one transaction
==========================================================

Problem:
  Two users look at the seat map, both see A2 free, both submit.
  A read-then-write flow lets both succeed.

Solution:
  Every transition is a conditional UPDATE:

    UPDATE ledger_entries
       SET state = :new_state, reservation_id = :new_owner, version = version + 1
     WHERE container_id = :c AND unit_id = :u
       AND state = :expected_state AND reservation_id = :expected_owner  -- IS NULL when free

  rowcount == 0 means the precondition no longer holds. A batch of transitions
  runs inside one transaction; if any unit fails, the whole transaction rolls
  back so no partial hold survives. Rows are touched in sorted key order so
  two overlapping batches queue on the same first row instead of deadlocking.

  Under PostgreSQL READ COMMITTED the second writer blocks on the row lock,
  then re-evaluates the WHERE clause against the committed row and matches
  nothing. SQLite serialises writers on its database lock with the same result.

The snapshot is a plain read. It shows committed state and never prevents a
race by itself; only commit() does that.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core import clock
from booking_core.core.config import get_settings
from booking_core.core.exceptions import Conflict
from booking_core.core.logging import get_logger
from booking_core.core.metrics import ledger_conflicts, ledger_retries
from booking_core.models.container import Unit
from booking_core.models.ledger import CONFIRMED, FREE, HELD, LedgerEntry

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transition:
    container_id: str
    unit_id: str
    expected_state: str
    expected_reservation: Optional[str]
    new_state: str
    new_reservation: Optional[str]


def transitions_for(
    container_id: str,
    unit_ids: Iterable[str],
    expected_state: str,
    expected_reservation: Optional[str],
    new_state: str,
    new_reservation: Optional[str],
) -> list[Transition]:
    return [
        Transition(container_id, unit_id, expected_state, expected_reservation, new_state, new_reservation)
        for unit_id in sorted(set(unit_ids))
    ]


async def snapshot(db: AsyncSession, container_id: str) -> dict[str, str]:
    """Current state of every unit in the container, in display order."""
    result = await db.execute(
        select(LedgerEntry.unit_id, LedgerEntry.state)
        .join(Unit, (Unit.container_id == LedgerEntry.container_id) & (Unit.unit_id == LedgerEntry.unit_id))
        .where(LedgerEntry.container_id == container_id)
        .order_by(Unit.position.asc())
    )
    return {unit_id: state for unit_id, state in result.all()}


async def states(db: AsyncSession, container_id: str, unit_ids: Iterable[str]) -> dict[str, str]:
    """Fresh read of selected units."""
    result = await db.execute(
        select(LedgerEntry.unit_id, LedgerEntry.state).where(
            LedgerEntry.container_id == container_id,
            LedgerEntry.unit_id.in_(set(unit_ids)),
        )
    )
    return dict(result.all())


async def availability(db: AsyncSession, container_id: str) -> dict[str, dict[str, int]]:
    """
    Per-category counts derived from ledger rows.

    There is no separately maintained "available" counter, so these numbers
    always agree with per-unit state.
    """
    result = await db.execute(
        select(Unit.category, LedgerEntry.state, func.count())
        .join(LedgerEntry, (LedgerEntry.container_id == Unit.container_id) & (LedgerEntry.unit_id == Unit.unit_id))
        .where(Unit.container_id == container_id)
        .group_by(Unit.category, LedgerEntry.state)
    )
    counts: dict[str, dict[str, int]] = {}
    for category, state, count in result.all():
        bucket = counts.setdefault(category, {"total": 0, FREE: 0, HELD: 0, CONFIRMED: 0})
        bucket[state] += count
        bucket["total"] += count
    return counts


def _owner_matches(expected_reservation: Optional[str]):
    if expected_reservation is None:
        return LedgerEntry.reservation_id.is_(None)
    return LedgerEntry.reservation_id == expected_reservation


async def _apply(db: AsyncSession, transitions: Sequence[Transition]) -> list[str]:
    failed: list[str] = []
    now = clock.utcnow()
    for t in sorted(transitions, key=lambda t: (t.container_id, t.unit_id)):
        result = await db.execute(
            update(LedgerEntry)
            .where(
                LedgerEntry.container_id == t.container_id,
                LedgerEntry.unit_id == t.unit_id,
                LedgerEntry.state == t.expected_state,
                _owner_matches(t.expected_reservation),
            )
            .values(
                state=t.new_state,
                reservation_id=t.new_reservation,
                version=LedgerEntry.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            failed.append(t.unit_id)
    return failed


async def commit(
    db: AsyncSession,
    transitions: Sequence[Transition],
    pending: Sequence[object] = (),
) -> None:
    """
    Apply transitions all-or-nothing and commit the session's transaction.

    `pending` ORM objects (for example a new Reservation) are written in the
    same transaction, as are any changes already made to loaded objects.
    On failure the transaction is rolled back and Conflict names every unit
    whose precondition failed. A transient lock error raises a retryable
    Conflict without unit ids.
    """
    try:
        db.add_all(pending)
        await db.flush()
        failed = await _apply(db, transitions)
        if failed:
            await db.rollback()
            ledger_conflicts.inc()
            logger.info("ledger_commit_conflict", units=failed)
            raise Conflict("Ledger state changed before commit", unit_ids=failed)
        await db.commit()
    except OperationalError as e:
        await db.rollback()
        ledger_conflicts.inc()
        logger.warning("ledger_commit_busy", error=str(e.orig))
        raise Conflict("Ledger is busy, try again", retryable=True) from e


def backoff_delay(attempt: int, base: float) -> float:
    """Exponential backoff with jitter for a 1-based attempt number."""
    return base * (2 ** (attempt - 1)) + random.uniform(0, base)


def can_retry(exc: Conflict, attempt: int) -> bool:
    """True when a failed commit was transient and attempts remain."""
    return exc.retryable and attempt < get_settings().COMMIT_MAX_RETRIES


async def wait_before_retry(attempt: int) -> None:
    ledger_retries.inc()
    await asyncio.sleep(backoff_delay(attempt, get_settings().COMMIT_RETRY_BASE_DELAY))
