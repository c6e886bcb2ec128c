"""
Catalog and availability endpoints.

Unit listings are cached in Redis; snapshots and availability counts always
come from the ledger.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.db.session import get_db
from booking_core.core.security import get_current_requester_id
from booking_core.core.logging import get_logger
from booking_core.schemas.container import (
    AvailabilityResponse, CategoryAvailability, ContainerCreate, ContainerResponse, SnapshotResponse, UnitResponse,
)
from booking_core.services import catalog_service, ledger_service, release_service
from booking_core.services.cache_service import get_cached_units, invalidate_units, set_cached_units

logger = get_logger(__name__)
router = APIRouter(prefix="/containers", tags=["Containers"])


@router.post("/", response_model=ContainerResponse, status_code=status.HTTP_201_CREATED)
async def import_container_endpoint(
    data: ContainerCreate,
    requester_id: str = Depends(get_current_requester_id),
    db: AsyncSession = Depends(get_db),
):
    """Import an event seat layout or a parking lot. Requires authentication."""
    container = await catalog_service.import_container(db, data)
    await invalidate_units(container.id)
    logger.info("container_import_requested", container_id=container.id, requester_id=requester_id)
    return container


@router.get("/", response_model=list[ContainerResponse])
async def list_containers_endpoint(
    kind: Optional[Literal["event", "lot"]] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await catalog_service.list_containers(db, kind=kind)


@router.get("/{container_id}", response_model=ContainerResponse)
async def get_container_endpoint(container_id: str, db: AsyncSession = Depends(get_db)):
    return await catalog_service.get_container(db, container_id)


@router.get("/{container_id}/units", response_model=list[UnitResponse])
async def list_units_endpoint(container_id: str, db: AsyncSession = Depends(get_db)):
    """Units in display order. Cached: the catalog never changes after import."""
    cached = await get_cached_units(container_id)
    if cached is not None:
        return [UnitResponse(**u) for u in cached]

    units = await catalog_service.list_units(db, container_id)
    payload = [UnitResponse.model_validate(u).model_dump() for u in units]
    await set_cached_units(container_id, payload)
    return payload


@router.get("/{container_id}/snapshot", response_model=SnapshotResponse)
async def snapshot_endpoint(container_id: str, db: AsyncSession = Depends(get_db)):
    """Per-unit state. Expired holds are released first so they show as free."""
    await catalog_service.get_container(db, container_id)
    await release_service.expire_due(db, container_id=container_id, trigger="lazy")
    units = await ledger_service.snapshot(db, container_id)
    return SnapshotResponse(container_id=container_id, units=units)


@router.get("/{container_id}/availability", response_model=AvailabilityResponse)
async def availability_endpoint(container_id: str, db: AsyncSession = Depends(get_db)):
    """Free/held/confirmed counts per category (seat section or slot type)."""
    await catalog_service.get_container(db, container_id)
    await release_service.expire_due(db, container_id=container_id, trigger="lazy")
    counts = await ledger_service.availability(db, container_id)

    by_category = {name: CategoryAvailability(**bucket) for name, bucket in counts.items()}
    return AvailabilityResponse(
        container_id=container_id,
        total=sum(c.total for c in by_category.values()),
        free=sum(c.free for c in by_category.values()),
        held=sum(c.held for c in by_category.values()),
        confirmed=sum(c.confirmed for c in by_category.values()),
        by_category=by_category,
    )
