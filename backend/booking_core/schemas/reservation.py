"""
Pydantic schemas for reservation request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ReservationCreate(BaseModel):
    container_id: str = Field(..., min_length=1, max_length=64)
    # Empty and oversized requests are rejected by the allocator with typed errors
    unit_ids: list[str]
    ttl_seconds: Optional[int] = Field(None, gt=0)
    vehicle_number: Optional[str] = Field(None, min_length=1, max_length=32)


class ReservationResponse(BaseModel):
    id: str
    container_id: str
    requester_id: str
    unit_ids: list[str]
    status: str
    payment_status: str
    total_amount: float
    vehicle_number: Optional[str]
    qr_code: Optional[str]
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime]
    released_at: Optional[datetime]

    model_config = {"from_attributes": True}
