"""
Tests for catalog import, unit listings, snapshots and availability.
"""

import asyncio

import pytest
from httpx import AsyncClient
from pydantic import ValidationError

from booking_core.core.exceptions import Conflict, InvalidRequest
from booking_core.schemas.container import ContainerCreate, SeatLayout
from booking_core.models.container import Container
from booking_core.services import catalog_service
from booking_core.services.catalog_service import build_units, expand_layout


def test_legacy_layout_splits_rows_into_priced_thirds():
    """Flat rows/columns grids become Premium/Standard/Economy sections."""
    layout = SeatLayout(rows=["A", "B", "C", "D", "E", "F", "G"], columns=[1, 2])
    sections = expand_layout(layout, base_price=100)

    assert [s.name for s in sections] == ["Premium", "Standard", "Economy"]
    assert [s.rows for s in sections] == [["A", "B"], ["C", "D"], ["E", "F", "G"]]
    assert [s.price for s in sections] == [150.0, 100.0, 70.0]


def test_legacy_layout_with_few_rows_skips_empty_sections():
    layout = SeatLayout(rows=["A", "B"], columns=[1])
    sections = expand_layout(layout, base_price=10)
    assert [s.name for s in sections] == ["Economy"]
    assert sections[0].rows == ["A", "B"]


def test_seat_ids_follow_section_row_number():
    data = ContainerCreate(
        id="E9",
        kind="event",
        title="Gala",
        layout={"sections": [
            {"name": "VIP", "rows": ["A"], "columns": [1, 2], "price": 200},
            {"name": "Balcony", "rows": ["B"], "columns": [1], "price": 50},
        ]},
    )
    units = build_units(data)
    assert [u.unit_id for u in units] == ["VIP-A1", "VIP-A2", "Balcony-B1"]
    assert [u.position for u in units] == [0, 1, 2]


def test_duplicate_unit_ids_rejected():
    data = ContainerCreate(
        id="L9",
        kind="lot",
        title="Dup Lot",
        slots=[
            {"slot_number": "C-01", "slot_type": "car"},
            {"slot_number": "C-01", "slot_type": "bike"},
        ],
    )
    with pytest.raises(InvalidRequest):
        build_units(data)


@pytest.mark.asyncio
async def test_import_event_container(client: AsyncClient, auth_headers):
    """Authenticated import creates the container and all seats free."""
    response = await client.post(
        "/api/v1/containers/",
        json={
            "id": "CONF26",
            "kind": "event",
            "title": "Python Conference 2026",
            "venue": "Convention Center",
            "base_price": 200,
            "layout": {"rows": ["A", "B", "C"], "columns": [1, 2]},
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["kind"] == "event"

    snapshot = await client.get("/api/v1/containers/CONF26/snapshot")
    units = snapshot.json()["units"]
    assert list(units) == [
        "Premium-A1", "Premium-A2", "Standard-B1", "Standard-B2", "Economy-C1", "Economy-C2",
    ]
    assert set(units.values()) == {"free"}


@pytest.mark.asyncio
async def test_import_unauthenticated(client: AsyncClient):
    response = await client.post("/api/v1/containers/", json={
        "id": "X1", "kind": "lot", "title": "Lot", "slots": [{"slot_number": "1", "slot_type": "car"}],
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_import_existing_container_conflicts(client: AsyncClient, auth_headers, test_event):
    response = await client.post(
        "/api/v1/containers/",
        json={"id": "E1", "kind": "lot", "title": "Again", "slots": [{"slot_number": "1", "slot_type": "car"}]},
        headers=auth_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_import_event_without_layout(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/v1/containers/",
        json={"id": "E2", "kind": "event", "title": "No Layout"},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_units_in_display_order(client: AsyncClient, test_lot):
    """Slots are ordered by slot number regardless of import order."""
    response = await client.get("/api/v1/containers/L1/units")
    assert response.status_code == 200
    data = response.json()
    assert [u["unit_id"] for u in data] == ["B-01", "C-01", "C-02"]
    assert data[0]["category"] == "bike"
    assert data[1]["price"] == 50.0


@pytest.mark.asyncio
async def test_list_containers_by_kind(client: AsyncClient, test_event, test_lot):
    response = await client.get("/api/v1/containers/?kind=lot")
    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == ["L1"]


@pytest.mark.asyncio
async def test_get_container_not_found(client: AsyncClient):
    response = await client.get("/api/v1/containers/NOPE")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_snapshot_unknown_container(client: AsyncClient):
    response = await client.get("/api/v1/containers/NOPE/snapshot")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_availability_counts_per_category(client: AsyncClient, auth_headers, test_lot):
    """Counts come from ledger rows, so they move with every hold."""
    await client.post(
        "/api/v1/reservations/",
        json={"container_id": "L1", "unit_ids": ["C-01"], "vehicle_number": "ka01ab1234"},
        headers=auth_headers,
    )

    response = await client.get("/api/v1/containers/L1/availability")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["free"] == 2
    assert data["held"] == 1
    assert data["by_category"]["car"] == {"total": 2, "free": 1, "held": 1, "confirmed": 0}
    assert data["by_category"]["bike"]["free"] == 1


def test_row_label_longer_than_column_rejected():
    with pytest.raises(ValidationError):
        SeatLayout(rows=["R" * 17], columns=[1])
    with pytest.raises(ValidationError):
        SeatLayout(sections=[{"name": "Floor", "rows": ["A"], "columns": [0], "price": 10}])


@pytest.mark.asyncio
async def test_import_overlong_row_label_is_422(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/v1/containers/",
        json={
            "id": "LONG",
            "kind": "event",
            "title": "Long Rows",
            "layout": {"sections": [{"name": "Floor", "rows": ["X" * 40], "columns": [1], "price": 10}]},
        },
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_concurrent_imports_of_same_id(session_factory):
    """Both imports pass the existence check; the loser still gets Conflict, not a DB error."""
    data = ContainerCreate(
        id="DUP",
        kind="lot",
        title="Contested Lot",
        slots=[{"slot_number": f"C-{n:02d}", "slot_type": "car"} for n in range(1, 21)],
    )

    async def attempt():
        async with session_factory() as db:
            try:
                return await catalog_service.import_container(db, data)
            except Conflict as e:
                return e

    results = await asyncio.gather(attempt(), attempt())

    assert sorted(type(r).__name__ for r in results) == ["Conflict", "Container"]
    async with session_factory() as db:
        units = await catalog_service.list_units(db, "DUP")
        assert len(units) == 20
        assert await db.get(Container, "DUP") is not None
