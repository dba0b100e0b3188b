from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, ConfigDict

from .models import Booking, BookingStatus


class RoomBase(BaseModel):
    """
    Base schema for room information.

    Shared fields used when creating and reading rooms.
    """
    room_number: str = Field(..., min_length=1, max_length=20, pattern=r"^[0-9A-Za-z-]+$")
    capacity: int = Field(..., ge=1, le=100)
    price: Decimal = Field(..., ge=Decimal("0.01"), max_digits=8, decimal_places=2)


class RoomCreate(RoomBase):
    """
    Schema for creating a new room.

    Inherits all fields from RoomBase. New rooms always start available.
    """
    pass


class RoomRead(RoomBase):
    """
    Schema returned when reading room data.

    Extends RoomBase with the identifier and the availability flag.
    """
    id: int
    is_available: bool

    model_config = ConfigDict(from_attributes=True)


class BookingCreate(BaseModel):
    """
    Schema for creating a new booking.

    The customer is never part of the body; it comes from the caller's token.
    """
    room_id: int = Field(..., ge=1)
    check_in_date: date = Field(...)
    check_out_date: date = Field(...)


class BookingRead(BaseModel):
    """
    Schema returned when reading booking information.

    ``total_price`` is derived: nights multiplied by the room's nightly price.
    """
    id: int
    room_number: str
    check_in_date: date
    check_out_date: date
    status: BookingStatus
    total_price: Decimal
    customer_name: str

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingRead":
        room = booking.room
        return cls(
            id=booking.id,
            room_number=room.room_number,
            check_in_date=booking.check_in_date,
            check_out_date=booking.check_out_date,
            status=booking.status,
            total_price=room.price * booking.nights,
            customer_name=booking.customer_name,
        )


class RoomAvailability(BaseModel):
    room_id: int
    available: bool
