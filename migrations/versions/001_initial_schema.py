"""Initial schema: reservations, blackouts.

Revision ID: 001_initial
Revises:
Create Date: 2025-10-10

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_WHERE = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("client_name", sa.String(), nullable=False),
        sa.Column("client_email", sa.String(), nullable=False),
        sa.Column("client_phone", sa.String(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("slot_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_reservations_property_id"), "reservations", ["property_id"], unique=False)
    op.create_index(op.f("ix_reservations_slot_at"), "reservations", ["slot_at"], unique=False)
    op.create_index(op.f("ix_reservations_status"), "reservations", ["status"], unique=False)
    op.create_index(op.f("ix_reservations_owner_id"), "reservations", ["owner_id"], unique=False)
    op.create_index(
        "uq_reservations_active_slot",
        "reservations",
        ["property_id", "slot_at"],
        unique=True,
        postgresql_where=ACTIVE_WHERE,
        sqlite_where=ACTIVE_WHERE,
    )

    op.create_table(
        "blackouts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("blackout_date", sa.Date(), nullable=False),
        sa.Column("slot", sa.Time(), nullable=True),
        sa.Column("slot_key", sa.String(length=5), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("blackout_date", "slot_key", name="uq_blackouts_date_slot"),
    )
    op.create_index(op.f("ix_blackouts_blackout_date"), "blackouts", ["blackout_date"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_blackouts_blackout_date"), table_name="blackouts")
    op.drop_table("blackouts")
    op.drop_index("uq_reservations_active_slot", table_name="reservations")
    op.drop_index(op.f("ix_reservations_owner_id"), table_name="reservations")
    op.drop_index(op.f("ix_reservations_status"), table_name="reservations")
    op.drop_index(op.f("ix_reservations_slot_at"), table_name="reservations")
    op.drop_index(op.f("ix_reservations_property_id"), table_name="reservations")
    op.drop_table("reservations")
