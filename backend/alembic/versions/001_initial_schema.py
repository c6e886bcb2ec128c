"""Initial schema: containers, units, reservations, ledger entries.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Catalog: events and parking lots
    op.create_table(
        "containers",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("kind IN ('event', 'lot')", name="check_container_kind"),
    )
    op.create_index("ix_containers_kind_starts_at", "containers", ["kind", "starts_at"])

    # Catalog: seats and slots, immutable after import
    op.create_table(
        "units",
        sa.Column("container_id", sa.String(64), sa.ForeignKey("containers.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("unit_id", sa.String(64), primary_key=True),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("row_label", sa.String(16), nullable=True),
        sa.Column("number", sa.Integer(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.CheckConstraint("kind IN ('seat', 'slot')", name="check_unit_kind"),
        sa.CheckConstraint("price >= 0", name="check_unit_price_non_negative"),
    )
    # Seat maps are always read in display order
    op.create_index("ix_units_container_position", "units", ["container_id", "position"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(64), sa.ForeignKey("containers.id"), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("unit_ids", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(12), nullable=False, server_default=sa.text("'held'")),
        sa.Column("payment_status", sa.String(12), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("vehicle_number", sa.String(32), nullable=True),
        sa.Column("qr_code", sa.String(128), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('held', 'confirmed', 'cancelled', 'expired')", name="check_reservation_status"
        ),
        sa.CheckConstraint("payment_status IN ('pending', 'paid')", name="check_reservation_payment_status"),
        sa.CheckConstraint("total_amount >= 0", name="check_reservation_total_non_negative"),
    )
    op.create_index("ix_reservations_requester_created", "reservations", ["requester_id", "created_at"])
    # The expiry sweep scans held reservations by expiry time
    op.create_index("ix_reservations_status_expires", "reservations", ["status", "expires_at"])
    op.create_index("ix_reservations_container", "reservations", ["container_id"])

    # Ledger: the only mutable per-unit state
    op.create_table(
        "ledger_entries",
        sa.Column("container_id", sa.String(64), primary_key=True),
        sa.Column("unit_id", sa.String(64), primary_key=True),
        sa.Column("state", sa.String(10), nullable=False, server_default=sa.text("'free'")),
        sa.Column("reservation_id", sa.String(36), sa.ForeignKey("reservations.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["container_id", "unit_id"], ["units.container_id", "units.unit_id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint("state IN ('free', 'held', 'confirmed')", name="check_ledger_state"),
        sa.CheckConstraint(
            "(state = 'free') = (reservation_id IS NULL)", name="check_ledger_owner_matches_state"
        ),
    )
    # Availability counts group by container and state
    op.create_index("ix_ledger_container_state", "ledger_entries", ["container_id", "state"])
    op.create_index("ix_ledger_reservation", "ledger_entries", ["reservation_id"])


def downgrade() -> None:
    op.drop_table("ledger_entries")
    op.drop_table("reservations")
    op.drop_table("units")
    op.drop_table("containers")
