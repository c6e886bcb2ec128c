"""
Resource catalog: containers (events, parking lots) and their units.

Key design decisions:
- Units are immutable after import; their mutable state lives in ledger_entries
- `position` fixes display order (section, row, number / slot number)
- Price is static per unit so reservation totals never depend on live state
"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, String,
)
from sqlalchemy.orm import relationship

from booking_core.db.base import Base, TimestampMixin, UTCDateTime


class Container(Base, TimestampMixin):
    __tablename__ = "containers"

    id = Column(String(64), primary_key=True)
    kind = Column(String(10), nullable=False)  # event, lot
    title = Column(String(255), nullable=False)
    venue = Column(String(255), nullable=True)
    starts_at = Column(UTCDateTime(), nullable=True)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    units = relationship(
        "Unit",
        back_populates="container",
        order_by="Unit.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("kind IN ('event', 'lot')", name="check_container_kind"),
        Index("ix_containers_kind_starts_at", "kind", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Container(id={self.id}, kind={self.kind}, title={self.title})>"


class Unit(Base):
    __tablename__ = "units"

    container_id = Column(
        String(64), ForeignKey("containers.id", ondelete="CASCADE"), primary_key=True
    )
    unit_id = Column(String(64), primary_key=True)
    kind = Column(String(10), nullable=False)  # seat, slot
    category = Column(String(64), nullable=False)  # seat section, or car/bike
    row_label = Column(String(16), nullable=True)
    number = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    position = Column(Integer, nullable=False)

    container = relationship("Container", back_populates="units")

    __table_args__ = (
        CheckConstraint("kind IN ('seat', 'slot')", name="check_unit_kind"),
        CheckConstraint("price >= 0", name="check_unit_price_non_negative"),
        Index("ix_units_container_position", "container_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<Unit(container={self.container_id}, unit={self.unit_id}, category={self.category})>"
