"""
Pydantic schemas for catalog import and availability responses.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional
from pydantic import BaseModel, Field, model_validator

# Sized to the units table: row_label is String(16) and unit_id is String(64),
# so "{section}-{row}{number}" stays within 32 + 1 + 16 + 6 characters
RowLabel = Annotated[str, Field(min_length=1, max_length=16)]
SeatNumber = Annotated[int, Field(ge=1, le=999999)]


class SectionSpec(BaseModel):
    name: str = Field(..., min_length=1, max_length=32, pattern=r"^[A-Za-z0-9_ ]+$")
    rows: list[RowLabel] = Field(..., min_length=1)
    columns: list[SeatNumber] = Field(..., min_length=1)
    price: float = Field(..., ge=0)


class SeatLayout(BaseModel):
    """Sectioned layout, or the legacy flat rows/columns grid."""

    sections: Optional[list[SectionSpec]] = None
    rows: Optional[list[RowLabel]] = None
    columns: Optional[list[SeatNumber]] = None

    @model_validator(mode="after")
    def check_format(self) -> "SeatLayout":
        if self.sections:
            return self
        if self.rows and self.columns:
            return self
        raise ValueError("layout needs either sections or rows and columns")


class SlotSpec(BaseModel):
    slot_number: str = Field(..., min_length=1, max_length=32)
    slot_type: Literal["car", "bike"]
    price: float = Field(0, ge=0)


class ContainerCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    kind: Literal["event", "lot"]
    title: str = Field(..., min_length=1, max_length=255)
    venue: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    base_price: float = Field(0, ge=0)
    layout: Optional[SeatLayout] = None
    slots: Optional[list[SlotSpec]] = None

    @model_validator(mode="after")
    def check_inventory(self) -> "ContainerCreate":
        if self.kind == "event" and self.layout is None:
            raise ValueError("event containers need a seat layout")
        if self.kind == "lot" and not self.slots:
            raise ValueError("lot containers need at least one slot")
        return self


class ContainerResponse(BaseModel):
    id: str
    kind: str
    title: str
    venue: Optional[str]
    starts_at: Optional[datetime]
    base_price: float
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnitResponse(BaseModel):
    unit_id: str
    kind: str
    category: str
    row_label: Optional[str]
    number: Optional[int]
    price: float
    position: int

    model_config = {"from_attributes": True}


class SnapshotResponse(BaseModel):
    container_id: str
    units: dict[str, str]


class CategoryAvailability(BaseModel):
    total: int = 0
    free: int = 0
    held: int = 0
    confirmed: int = 0


class AvailabilityResponse(BaseModel):
    container_id: str
    total: int
    free: int
    held: int
    confirmed: int
    by_category: dict[str, CategoryAvailability]
