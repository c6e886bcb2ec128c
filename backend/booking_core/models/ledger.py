"""
Ledger entry: the authoritative state of one unit.

Key design decisions:
- One row per unit, keyed like the unit itself
- Every transition is a conditional UPDATE on (state, reservation_id); a zero
  row count means another request got there first
- `version` increments on every applied transition for auditing and debugging
- The free <-> reservation_id pairing is enforced by a CHECK constraint
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, ForeignKeyConstraint, Index, Integer, String

from booking_core.core import clock
from booking_core.db.base import Base, UTCDateTime

FREE = "free"
HELD = "held"
CONFIRMED = "confirmed"
UNIT_STATES = (FREE, HELD, CONFIRMED)


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    container_id = Column(String(64), primary_key=True)
    unit_id = Column(String(64), primary_key=True)
    state = Column(String(10), nullable=False, default=FREE)
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        UTCDateTime(),
        nullable=False,
        default=lambda: clock.utcnow(),
        onupdate=lambda: clock.utcnow(),
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["container_id", "unit_id"],
            ["units.container_id", "units.unit_id"],
            ondelete="CASCADE",
        ),
        CheckConstraint("state IN ('free', 'held', 'confirmed')", name="check_ledger_state"),
        CheckConstraint(
            "(state = 'free') = (reservation_id IS NULL)",
            name="check_ledger_owner_matches_state",
        ),
        Index("ix_ledger_container_state", "container_id", "state"),
        Index("ix_ledger_reservation", "reservation_id"),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry(unit={self.container_id}/{self.unit_id}, state={self.state})>"
