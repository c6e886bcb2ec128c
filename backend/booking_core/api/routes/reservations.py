"""
Reservation endpoints: reserve, confirm, cancel, and list.

A 409 from POST /reservations is a normal outcome under contention. The body
names the units that were taken so the client can refresh the seat map and
let the user choose again instead of resubmitting blindly.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.db.session import get_db
from booking_core.schemas.reservation import ReservationCreate, ReservationResponse
from booking_core.services import release_service
from booking_core.services.reservation_service import reserve
from booking_core.core.security import get_current_requester_id

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    requester_id: str = Depends(get_current_requester_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Hold a set of units.

    All requested units are held together or none are. The hold lasts
    ttl_seconds (default HOLD_TTL_SECONDS) unless confirmed first.
    """
    return await reserve(
        db,
        data.container_id,
        data.unit_ids,
        requester_id,
        ttl_seconds=data.ttl_seconds,
        vehicle_number=data.vehicle_number,
    )


@router.get("/", response_model=list[ReservationResponse])
async def list_reservations_endpoint(
    kind: Optional[Literal["event", "lot"]] = Query(None),
    requester_id: str = Depends(get_current_requester_id),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated requester's reservations, newest first."""
    return await release_service.list_reservations(db, requester_id, kind=kind)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation_endpoint(
    reservation_id: str,
    requester_id: str = Depends(get_current_requester_id),
    db: AsyncSession = Depends(get_db),
):
    return await release_service.get_reservation(db, reservation_id, requester_id)


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation_endpoint(
    reservation_id: str,
    requester_id: str = Depends(get_current_requester_id),
    db: AsyncSession = Depends(get_db),
):
    """Finalize a hold after payment. Fails with 409 once the hold has expired."""
    return await release_service.confirm(db, reservation_id, requester_id)


@router.delete("/{reservation_id}", response_model=ReservationResponse)
async def cancel_reservation_endpoint(
    reservation_id: str,
    requester_id: str = Depends(get_current_requester_id),
    db: AsyncSession = Depends(get_db),
):
    """Release a hold. Cancelling an already released reservation succeeds."""
    return await release_service.cancel(db, reservation_id, requester_id)
