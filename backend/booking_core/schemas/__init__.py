from booking_core.schemas.container import (
    ContainerCreate, ContainerResponse, UnitResponse, SnapshotResponse, AvailabilityResponse,
)
from booking_core.schemas.reservation import ReservationCreate, ReservationResponse

__all__ = [
    "ContainerCreate", "ContainerResponse", "UnitResponse", "SnapshotResponse", "AvailabilityResponse",
    "ReservationCreate", "ReservationResponse",
]
