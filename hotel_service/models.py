from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from .database import Base


class BookingStatus(str, PyEnum):
    """
    Enumeration of possible booking statuses.

    Values
    ------
    CONFIRMED
        Booking is active and holds the room for its date range.
    CANCELLED
        Booking has been cancelled and no longer blocks the room.
        This state is terminal.
    """
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Room(Base):
    """
    SQLAlchemy model representing a hotel room.

    Attributes
    ----------
    id : int
        Primary key.
    room_number : str
        Unique business key (e.g. '101').
    capacity : int
        Maximum number of guests.
    price : Decimal
        Price per night, two decimal places.
    is_available : bool
        Denormalized availability flag, flipped in the same transaction as
        every booking create/cancel on this room.
    version : int
        Optimistic concurrency counter; an UPDATE based on a stale read
        fails with StaleDataError.
    created_at : datetime
        Timestamp when the room was created.
    updated_at : datetime
        Timestamp of the last modification.
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(40), unique=True, nullable=False, index=True)
    capacity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="room")

    __mapper_args__ = {"version_id_col": version}


class Booking(Base):
    """
    SQLAlchemy model representing a room booking.

    Attributes
    ----------
    id : int
        Primary key.
    customer_name : str
        Username of the caller who made the booking, or 'anonymousUser'.
    check_in_date : date
        First night of the stay.
    check_out_date : date
        Departure day (exclusive end of the reserved range).
    status : BookingStatus
        CONFIRMED or CANCELLED.
    room_id : int
        Identifier of the booked room.
    version : int
        Optimistic concurrency counter.
    created_at : datetime
        Timestamp when the booking was created.
    updated_at : datetime
        Timestamp of the last modification.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    customer_name = Column(String(100), nullable=False)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.CONFIRMED)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room = relationship("Room", back_populates="bookings")

    __mapper_args__ = {"version_id_col": version}

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days
