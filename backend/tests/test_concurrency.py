"""
Race tests: concurrent reserve calls on separate sessions.

Each racer opens its own session, so on the shared SQLite file they behave
like separate connections contending for the same ledger rows.
"""

import asyncio
from collections import Counter

import pytest
from sqlalchemy import select

from booking_core.core.exceptions import Conflict, PartiallyUnavailable
from booking_core.models.reservation import Reservation
from booking_core.services import ledger_service, release_service, reservation_service


async def attempt(session_factory, container_id, unit_ids, requester_id):
    async with session_factory() as db:
        try:
            return await reservation_service.reserve(db, container_id, unit_ids, requester_id)
        except (PartiallyUnavailable, Conflict) as e:
            return e


@pytest.mark.asyncio
async def test_overlapping_requests_one_wins(session_factory, test_event):
    results = await asyncio.gather(
        attempt(session_factory, "E1", ["Floor-A1", "Floor-A2"], "U1"),
        attempt(session_factory, "E1", ["Floor-A2", "Floor-A3"], "U2"),
    )

    winners = [r for r in results if isinstance(r, Reservation)]
    losers = [r for r in results if not isinstance(r, Reservation)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], PartiallyUnavailable)
    assert losers[0].unit_ids == ["Floor-A2"]

    async with session_factory() as db:
        snapshot = await ledger_service.snapshot(db, "E1")
    held = sorted(u for u, state in snapshot.items() if state == "held")
    assert held == winners[0].unit_ids


@pytest.mark.asyncio
async def test_many_racers_for_one_seat(session_factory, test_event):
    results = await asyncio.gather(*[
        attempt(session_factory, "E1", ["Floor-A2"], f"U{n}") for n in range(10)
    ])

    outcomes = Counter(type(r).__name__ for r in results)
    assert outcomes["Reservation"] == 1
    assert outcomes["PartiallyUnavailable"] + outcomes["Conflict"] == 9

    async with session_factory() as db:
        held = (await db.execute(select(Reservation).where(Reservation.status == "held"))).scalars().all()
        snapshot = await ledger_service.snapshot(db, "E1")
    assert len(held) == 1
    assert snapshot["Floor-A2"] == "held"
    assert set(snapshot.values()) <= {"free", "held", "confirmed"}


@pytest.mark.asyncio
async def test_disjoint_requests_all_succeed(session_factory, large_event):
    results = await asyncio.gather(*[
        attempt(session_factory, "BIG", [f"Floor-A{n}", f"Floor-B{n}"], f"U{n}") for n in range(1, 11)
    ])

    # Disjoint sets never conflict on state; only lock contention can push one into Conflict
    assert not any(isinstance(r, PartiallyUnavailable) for r in results)
    async with session_factory() as db:
        counts = await ledger_service.availability(db, "BIG")
    winners = [r for r in results if isinstance(r, Reservation)]
    assert counts["Floor"]["held"] == 2 * len(winners)
    assert counts["Floor"]["free"] + counts["Floor"]["held"] == 20


@pytest.mark.asyncio
async def test_confirm_and_cancel_race(session_factory, test_event):
    async with session_factory() as db:
        reservation = await reservation_service.reserve(db, "E1", ["Floor-A1"], "U1")

    async def confirm():
        async with session_factory() as db:
            try:
                return await release_service.confirm(db, reservation.id, "U1")
            except Conflict as e:
                return e

    async def cancel():
        async with session_factory() as db:
            try:
                return await release_service.cancel(db, reservation.id, "U1")
            except Conflict as e:
                return e

    await asyncio.gather(confirm(), cancel())

    async with session_factory() as db:
        final = await db.get(Reservation, reservation.id)
        state = (await ledger_service.states(db, "E1", ["Floor-A1"]))["Floor-A1"]

    # Exactly one transition took effect, and the ledger agrees with it
    assert final.status in {"confirmed", "cancelled"}
    assert state == ("confirmed" if final.status == "confirmed" else "free")
