"""
Tests for the ledger's conditional commits.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from booking_core.core.exceptions import Conflict
from booking_core.models import ledger
from booking_core.models.ledger import LedgerEntry
from booking_core.models.reservation import Reservation
from booking_core.services import ledger_service, release_service, reservation_service


def new_reservation(unit_ids, container_id="E1", requester_id="U1") -> Reservation:
    return Reservation(
        id=str(uuid.uuid4()),
        container_id=container_id,
        requester_id=requester_id,
        unit_ids=sorted(unit_ids),
        status="held",
        payment_status="pending",
        total_amount=Decimal("0"),
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=5),
    )


async def hold(db, unit_ids) -> Reservation:
    reservation = new_reservation(unit_ids)
    transitions = ledger_service.transitions_for(
        "E1", unit_ids, ledger.FREE, None, ledger.HELD, reservation.id
    )
    await ledger_service.commit(db, transitions, pending=[reservation])
    return reservation


def test_transitions_are_sorted_and_deduplicated():
    transitions = ledger_service.transitions_for("E1", ["b", "a", "b"], "free", None, "held", "r1")
    assert [t.unit_id for t in transitions] == ["a", "b"]
    assert transitions[0].expected_reservation is None
    assert transitions[0].new_reservation == "r1"


@pytest.mark.asyncio
async def test_commit_moves_units_and_bumps_version(db_session, test_event):
    reservation = await hold(db_session, ["Floor-A1", "Floor-A2"])

    result = await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.container_id == "E1").order_by(LedgerEntry.unit_id)
    )
    entries = {e.unit_id: e for e in result.scalars().all()}
    assert entries["Floor-A1"].state == "held"
    assert entries["Floor-A1"].reservation_id == reservation.id
    assert entries["Floor-A1"].version == 2
    assert entries["Floor-A3"].state == "free"
    assert entries["Floor-A3"].version == 1


@pytest.mark.asyncio
async def test_failed_commit_leaves_no_partial_writes(session_factory, test_event):
    async with session_factory() as db:
        await hold(db, ["Floor-A2"])

    async with session_factory() as db:
        with pytest.raises(Conflict) as exc_info:
            await hold(db, ["Floor-A1", "Floor-A2", "Floor-A3"])
        assert exc_info.value.unit_ids == ["Floor-A2"]

    async with session_factory() as db:
        snapshot = await ledger_service.snapshot(db, "E1")
        assert snapshot == {"Floor-A1": "free", "Floor-A2": "held", "Floor-A3": "free"}
        reservations = (await db.execute(select(Reservation))).scalars().all()
        assert len(reservations) == 1


@pytest.mark.asyncio
async def test_wrong_owner_cannot_release(session_factory, test_event):
    async with session_factory() as db:
        reservation = await hold(db, ["Floor-A1"])

    async with session_factory() as db:
        transitions = ledger_service.transitions_for(
            "E1", ["Floor-A1"], ledger.HELD, "someone-else", ledger.FREE, None
        )
        with pytest.raises(Conflict):
            await ledger_service.commit(db, transitions)

    async with session_factory() as db:
        states = await ledger_service.states(db, "E1", ["Floor-A1"])
        assert states == {"Floor-A1": "held"}

        transitions = ledger_service.transitions_for(
            "E1", ["Floor-A1"], ledger.HELD, reservation.id, ledger.FREE, None
        )
        await ledger_service.commit(db, transitions)
        assert await ledger_service.states(db, "E1", ["Floor-A1"]) == {"Floor-A1": "free"}


@pytest.mark.asyncio
async def test_snapshot_follows_display_order(db_session, large_event):
    snapshot = await ledger_service.snapshot(db_session, "BIG")
    assert list(snapshot)[:3] == ["Floor-A1", "Floor-A2", "Floor-A3"]
    assert list(snapshot)[10] == "Floor-B1"
    assert len(snapshot) == 20


@pytest.mark.asyncio
async def test_availability_matches_snapshot(db_session, test_event):
    await hold(db_session, ["Floor-A3"])
    counts = await ledger_service.availability(db_session, "E1")
    snapshot = await ledger_service.snapshot(db_session, "E1")

    assert counts["Floor"]["total"] == len(snapshot)
    assert counts["Floor"]["held"] == list(snapshot.values()).count("held")
    assert counts["Floor"]["free"] == 2


@pytest.fixture
def busy_ledger(monkeypatch):
    """Make the next `failures` ledger writes hit a transient lock error."""
    original = ledger_service._apply
    state = {"failures": 1, "calls": 0}

    async def flaky_apply(db, transitions):
        state["calls"] += 1
        if state["calls"] <= state["failures"]:
            raise OperationalError("UPDATE ledger_entries", {}, Exception("database is locked"))
        return await original(db, transitions)

    monkeypatch.setattr(ledger_service, "_apply", flaky_apply)
    return state


def test_backoff_grows_per_attempt():
    assert 0.01 <= ledger_service.backoff_delay(1, 0.01) < 0.02
    assert 0.04 <= ledger_service.backoff_delay(3, 0.01) < 0.05


@pytest.mark.asyncio
async def test_busy_ledger_surfaces_retryable_conflict(db_session, test_event, busy_ledger):
    with pytest.raises(Conflict) as exc_info:
        await hold(db_session, ["Floor-A1"])
    assert exc_info.value.retryable is True
    assert exc_info.value.unit_ids == []


@pytest.mark.asyncio
async def test_cancel_retries_busy_ledger(session_factory, test_event, busy_ledger):
    async with session_factory() as db:
        reservation = await reservation_service.reserve(db, "E1", ["Floor-A1"], "U1")

    busy_ledger["calls"] = 0
    async with session_factory() as db:
        cancelled = await release_service.cancel(db, reservation.id, "U1")
    assert cancelled.status == "cancelled"
    assert busy_ledger["calls"] == 2

    async with session_factory() as db:
        assert await ledger_service.states(db, "E1", ["Floor-A1"]) == {"Floor-A1": "free"}


@pytest.mark.asyncio
async def test_confirm_retries_busy_ledger(session_factory, test_event, busy_ledger):
    async with session_factory() as db:
        reservation = await reservation_service.reserve(db, "E1", ["Floor-A1"], "U1")

    busy_ledger["calls"] = 0
    async with session_factory() as db:
        confirmed = await release_service.confirm(db, reservation.id, "U1")
    assert confirmed.status == "confirmed"
    assert confirmed.qr_code == f"EVENT-E1-{reservation.id}"

    async with session_factory() as db:
        assert await ledger_service.states(db, "E1", ["Floor-A1"]) == {"Floor-A1": "confirmed"}


@pytest.mark.asyncio
async def test_cancel_gives_up_after_bounded_retries(session_factory, test_event, busy_ledger):
    async with session_factory() as db:
        reservation = await reservation_service.reserve(db, "E1", ["Floor-A1"], "U1")

    busy_ledger["calls"] = 0
    busy_ledger["failures"] = 100
    async with session_factory() as db:
        with pytest.raises(Conflict) as exc_info:
            await release_service.cancel(db, reservation.id, "U1")
    assert exc_info.value.retryable is True
    assert busy_ledger["calls"] == 3

    async with session_factory() as db:
        assert await ledger_service.states(db, "E1", ["Floor-A1"]) == {"Floor-A1": "held"}


@pytest.mark.asyncio
async def test_reserve_retries_busy_ledger(session_factory, test_event, busy_ledger):
    async with session_factory() as db:
        reservation = await reservation_service.reserve(db, "E1", ["Floor-A1"], "U1")
    assert reservation.status == "held"
    assert busy_ledger["calls"] == 2


@pytest.mark.asyncio
async def test_reserve_gives_up_after_bounded_retries(session_factory, test_event, busy_ledger):
    busy_ledger["failures"] = 100
    async with session_factory() as db:
        with pytest.raises(Conflict):
            await reservation_service.reserve(db, "E1", ["Floor-A1"], "U1")
    assert busy_ledger["calls"] == 3
