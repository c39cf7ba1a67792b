"""Initial schema: rides, bookings and direct ride requests.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _location_columns() -> list[sa.Column]:
    return [
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("origin_address", sa.String(255), nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("destination_address", sa.String(255), nullable=True),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("driver_id", sa.String(64), nullable=False),
        *_location_columns(),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price_per_seat", sa.Numeric(10, 2), nullable=False),
        sa.Column("seats_total", sa.Integer, nullable=False),
        sa.Column(
            "fare_splitting_enabled",
            sa.Boolean,
            server_default=sa.false(),
            nullable=False,
        ),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("status", sa.String(20), server_default="open", nullable=False),
        sa.Column("version", sa.Integer, server_default="0", nullable=False),
        *_timestamps(),
        sa.CheckConstraint("seats_total >= 1", name="ck_rides_seats_total"),
        sa.CheckConstraint("price_per_seat > 0", name="ck_rides_price"),
    )
    op.create_index(
        "idx_rides_status_departure", "rides", ["status", "departure_time"]
    )
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "ride_id", sa.String(64), sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column("rider_id", sa.String(64), nullable=False),
        sa.Column("seats_booked", sa.Integer, nullable=False),
        sa.Column("price_per_seat", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_paid", sa.Numeric(10, 2), server_default="0", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column(
            "approval_status", sa.String(20), server_default="pending", nullable=False
        ),
        sa.Column("source_request_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("seats_booked >= 1", name="ck_bookings_seats"),
    )
    op.create_index("idx_bookings_ride", "bookings", ["ride_id"])
    op.create_index("idx_bookings_rider", "bookings", ["rider_id"])
    op.create_index("idx_bookings_status", "bookings", ["status"])

    # ── direct_ride_requests ──────────────────────────────────────────
    op.create_table(
        "direct_ride_requests",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=False),
        *_location_columns(),
        sa.Column("requested_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seats_requested", sa.Integer, nullable=False),
        sa.Column("rider_max_price_per_seat", sa.Numeric(10, 2), nullable=False),
        sa.Column("driver_quoted_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("message", sa.Text, server_default="", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("booking_id", sa.String(64), unique=True, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_requests_status_time",
        "direct_ride_requests",
        ["status", "requested_datetime"],
    )
    op.create_index("idx_requests_driver", "direct_ride_requests", ["driver_id"])
    op.create_index(
        "idx_requests_requester", "direct_ride_requests", ["requester_id"]
    )


def downgrade() -> None:
    op.drop_table("direct_ride_requests")
    op.drop_table("bookings")
    op.drop_table("rides")
