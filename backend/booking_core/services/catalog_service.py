"""
Resource catalog: containers and the units they hold.

Catalog rows are written once at import time and only read afterwards, which
is what lets the unit listing be cached. Import also seeds one `free` ledger
entry per unit inside the same transaction, so a unit never exists without
ledger state.

Seat layouts arrive either sectioned or in the older flat rows/columns shape.
Flat grids are split into thirds by row: Premium (1.5x base price), Standard
(base price) and Economy (0.7x base price), with leftover rows in Economy.
"""

from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core.exceptions import Conflict, InvalidRequest, NotFound
from booking_core.core.logging import get_logger
from booking_core.models.container import Container, Unit
from booking_core.models.ledger import FREE, LedgerEntry
from booking_core.schemas.container import ContainerCreate, SeatLayout, SectionSpec

logger = get_logger(__name__)

PREMIUM_MULTIPLIER = Decimal("1.5")
ECONOMY_MULTIPLIER = Decimal("0.7")
CENTS = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def seat_id(section: str, row: str, number: int) -> str:
    return f"{section}-{row}{number}"


def expand_layout(layout: SeatLayout, base_price) -> list[SectionSpec]:
    """Return the layout as sections, converting the flat grid format."""
    if layout.sections:
        return list(layout.sections)

    rows = list(layout.rows)
    third = len(rows) // 3
    base = _money(base_price)
    candidates = [
        ("Premium", rows[:third], base * PREMIUM_MULTIPLIER),
        ("Standard", rows[third:third * 2], base),
        ("Economy", rows[third * 2:], base * ECONOMY_MULTIPLIER),
    ]
    return [
        SectionSpec(name=name, rows=section_rows, columns=list(layout.columns), price=float(_money(price)))
        for name, section_rows, price in candidates
        if section_rows
    ]


def build_units(data: ContainerCreate) -> list[Unit]:
    """Materialise catalog units in display order."""
    units: list[Unit] = []

    if data.kind == "event":
        for section in expand_layout(data.layout, data.base_price):
            for row in section.rows:
                for number in section.columns:
                    units.append(Unit(
                        container_id=data.id,
                        unit_id=seat_id(section.name, row, number),
                        kind="seat",
                        category=section.name,
                        row_label=row,
                        number=number,
                        price=_money(section.price),
                        position=len(units),
                    ))
    else:
        for slot in sorted(data.slots, key=lambda s: s.slot_number):
            units.append(Unit(
                container_id=data.id,
                unit_id=slot.slot_number,
                kind="slot",
                category=slot.slot_type,
                price=_money(slot.price),
                position=len(units),
            ))

    counts = Counter(u.unit_id for u in units)
    duplicates = sorted(unit_id for unit_id, count in counts.items() if count > 1)
    if duplicates:
        raise InvalidRequest(f"Duplicate unit identifiers: {', '.join(duplicates)}")
    return units


async def import_container(db: AsyncSession, data: ContainerCreate) -> Container:
    """Create a container, its units, and their free ledger entries atomically."""
    if await db.get(Container, data.id) is not None:
        raise Conflict(f"Container {data.id} already exists")

    units = build_units(data)
    container = Container(
        id=data.id,
        kind=data.kind,
        title=data.title,
        venue=data.venue,
        starts_at=data.starts_at,
        base_price=_money(data.base_price),
        is_active=True,
    )
    db.add(container)
    db.add_all(units)
    try:
        await db.flush()
        db.add_all(
            LedgerEntry(container_id=data.id, unit_id=u.unit_id, state=FREE, reservation_id=None, version=1)
            for u in units
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # A concurrent import of the same id committed first
        if await db.get(Container, data.id) is not None:
            logger.info("container_import_conflict", container_id=data.id)
            raise Conflict(f"Container {data.id} already exists")
        raise
    await db.refresh(container)

    logger.info("container_imported", container_id=container.id, kind=container.kind, units=len(units))
    return container


async def get_container(db: AsyncSession, container_id: str) -> Container:
    container = await db.get(Container, container_id)
    if container is None:
        raise NotFound(f"Container {container_id} not found")
    return container


async def list_containers(
    db: AsyncSession,
    kind: Optional[str] = None,
    active_only: bool = True,
) -> list[Container]:
    query = select(Container)
    if kind:
        query = query.where(Container.kind == kind)
    if active_only:
        query = query.where(Container.is_active.is_(True))
    result = await db.execute(query.order_by(Container.starts_at.asc(), Container.id.asc()))
    return list(result.scalars().all())


async def list_units(db: AsyncSession, container_id: str) -> list[Unit]:
    """All units of a container in display order."""
    await get_container(db, container_id)
    result = await db.execute(
        select(Unit).where(Unit.container_id == container_id).order_by(Unit.position.asc())
    )
    return list(result.scalars().all())


async def get_units(db: AsyncSession, container_id: str, unit_ids: Iterable[str]) -> dict[str, Unit]:
    """Look up specific units; raises NotFound naming any unknown identifiers."""
    wanted = set(unit_ids)
    result = await db.execute(
        select(Unit).where(Unit.container_id == container_id, Unit.unit_id.in_(wanted))
    )
    found = {unit.unit_id: unit for unit in result.scalars().all()}
    missing = wanted - found.keys()
    if missing:
        raise NotFound(f"Unknown units in {container_id}: {', '.join(sorted(missing))}", unit_ids=missing)
    return found
