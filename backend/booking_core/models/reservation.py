"""
Reservation: a set of units held together by one requester.

Key design decisions:
- unit_ids is stored sorted; membership is a set, order carries no meaning
- total_amount is derived from catalog prices at reserve time and never
  consulted for allocation
- Status keeps cancelled/expired rows for history instead of deleting them
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, JSON, Numeric, String

from booking_core.db.base import Base, TimestampMixin, UTCDateTime

HELD = "held"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
EXPIRED = "expired"
ACTIVE_STATUSES = (HELD, CONFIRMED)
RELEASED_STATUSES = (CANCELLED, EXPIRED)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True)
    container_id = Column(String(64), ForeignKey("containers.id"), nullable=False)
    requester_id = Column(String(64), nullable=False)
    unit_ids = Column(JSON, nullable=False)
    status = Column(String(12), nullable=False, default=HELD)
    payment_status = Column(String(12), nullable=False, default=PAYMENT_PENDING)
    total_amount = Column(Numeric(10, 2), nullable=False)
    vehicle_number = Column(String(32), nullable=True)
    qr_code = Column(String(128), nullable=True)
    expires_at = Column(UTCDateTime(), nullable=False)
    confirmed_at = Column(UTCDateTime(), nullable=True)
    released_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('held', 'confirmed', 'cancelled', 'expired')",
            name="check_reservation_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid')",
            name="check_reservation_payment_status",
        ),
        CheckConstraint("total_amount >= 0", name="check_reservation_total_non_negative"),
        Index("ix_reservations_requester_created", "requester_id", "created_at"),
        # Expiry sweep: held reservations ordered by expiry
        Index("ix_reservations_status_expires", "status", "expires_at"),
        Index("ix_reservations_container", "container_id"),
    )

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, requester={self.requester_id}, status={self.status})>"
