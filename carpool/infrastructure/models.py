"""
SQLAlchemy ORM models.

Tables
------
* ``rides``                 -- driver posts; ``version`` guards compare-and-swap
* ``bookings``              -- seats on a ride, each with its own price snapshot
* ``direct_ride_requests``  -- rider-to-driver negotiations

Statuses are stored as their string values so the same schema works on
PostgreSQL and SQLite.  Money is ``Numeric(10, 2)``.

Indexes
-------
* **B-Tree** on ``status`` + time columns for the expiry sweep.
* **B-Tree** on ``ride_id``, ``driver_id``, ``rider_id`` for look-ups.
"""

from datetime import timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .database import Base
from carpool.domain.enums import ApprovalStatus, BookingStatus, RequestStatus, RideStatus


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes in, timezone-aware UTC datetimes out.

    SQLite drops ``tzinfo`` on the way back; reattach it so comparisons
    against an aware ``now`` never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


Money = Numeric(10, 2, asdecimal=True)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(64), primary_key=True)
    driver_id = Column(String(64), nullable=False)

    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    origin_address = Column(String(255), nullable=True)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_address = Column(String(255), nullable=True)

    departure_time = Column(UTCDateTime, nullable=False)
    price_per_seat = Column(Money, nullable=False)
    seats_total = Column(Integer, nullable=False)
    fare_splitting_enabled = Column(Boolean, default=False, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    status = Column(String(20), default=RideStatus.OPEN.value, nullable=False)
    version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bookings = relationship(
        "BookingModel",
        order_by="BookingModel.created_at",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_rides_status_departure", "status", "departure_time"),
        Index("idx_rides_driver", "driver_id"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True)
    ride_id = Column(String(64), ForeignKey("rides.id"), nullable=False)
    rider_id = Column(String(64), nullable=False)

    seats_booked = Column(Integer, nullable=False)
    price_per_seat = Column(Money, nullable=False)
    total_paid = Column(Money, default=0, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    status = Column(String(20), default=BookingStatus.PENDING.value, nullable=False)
    approval_status = Column(
        String(20), default=ApprovalStatus.PENDING.value, nullable=False
    )
    source_request_id = Column(String(64), nullable=True)

    created_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_bookings_ride", "ride_id"),
        Index("idx_bookings_rider", "rider_id"),
        Index("idx_bookings_status", "status"),
    )


class DirectRideRequestModel(Base):
    __tablename__ = "direct_ride_requests"

    id = Column(String(64), primary_key=True)
    requester_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=False)

    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    origin_address = Column(String(255), nullable=True)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_address = Column(String(255), nullable=True)

    requested_datetime = Column(UTCDateTime, nullable=False)
    seats_requested = Column(Integer, nullable=False)
    rider_max_price_per_seat = Column(Money, nullable=False)
    driver_quoted_price = Column(Money, nullable=True)
    message = Column(Text, default="", nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    status = Column(String(20), default=RequestStatus.PENDING.value, nullable=False)
    booking_id = Column(String(64), unique=True, nullable=True)

    created_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_requests_status_time", "status", "requested_datetime"),
        Index("idx_requests_driver", "driver_id"),
        Index("idx_requests_requester", "requester_id"),
    )
