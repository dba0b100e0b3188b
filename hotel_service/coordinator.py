"""
Availability coordinator: the transactional booking create/cancel paths.

Every write here follows the same shape: lock the rows involved, re-check
the business rules against fresh state, write, commit, then evict the read
caches. Both ``rooms`` and ``bookings`` carry a SQLAlchemy version counter,
so a transaction that acted on a stale read fails at flush time even on
backends that ignore ``FOR UPDATE``.
"""
import logging
from datetime import date
from typing import Optional

import redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from common.cache import bookings_cache, rooms_cache

from . import conflicts, models, schemas
from .errors import (
    BookingError,
    ConflictError,
    DataIntegrityFault,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ANONYMOUS_CUSTOMER = "anonymousUser"
MIN_STAY_NIGHTS = 1
MAX_STAY_NIGHTS = 30


def validate_stay(check_in: date, check_out: date, today: Optional[date] = None) -> int:
    """
    Validate a requested stay and return its number of nights.

    Parameters
    ----------
    check_in : date
        First night of the stay.
    check_out : date
        Departure day (exclusive).
    today : Optional[date]
        Reference date for the "not in the past" rule; defaults to today.

    Returns
    -------
    int
        Number of nights between check_in and check_out.

    Raises
    ------
    ValidationError
        If a date is missing, check_in is in the past, or the stay is
        shorter than 1 night or longer than 30 nights.
    """
    if check_in is None or check_out is None:
        raise ValidationError("Both check-in and check-out dates are required")

    if check_in < (today or date.today()):
        raise ValidationError("Check-in date cannot be in the past")

    nights = (check_out - check_in).days
    if nights < MIN_STAY_NIGHTS:
        raise ValidationError("Minimum stay of 1 night required")
    if nights > MAX_STAY_NIGHTS:
        raise ValidationError(f"Maximum stay is {MAX_STAY_NIGHTS} nights")
    return nights


def _lock_room(db: Session, room_id: int) -> Optional[models.Room]:
    # populate_existing: the locked row must win over anything already in the identity map
    return (
        db.query(models.Room)
        .filter(models.Room.id == room_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def _lock_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    return (
        db.query(models.Booking)
        .filter(models.Booking.id == booking_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def evict_read_caches(committed: str) -> None:
    """
    Drop every cached room listing and booking lookup.

    Whole regions are evicted on every write rather than single keys.
    ``committed`` names the write that already succeeded, so the error a
    client sees on a failed eviction says the change was stored.
    """
    try:
        rooms_cache.evict_all()
        bookings_cache.evict_all()
    except redis.RedisError as exc:
        logger.error("Cache eviction failed after commit (%s): %s", committed, exc)
        raise UnexpectedError(f"{committed} but cached reads could not be refreshed") from exc


def create_booking(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
    customer_name: Optional[str] = None,
    today: Optional[date] = None,
) -> schemas.BookingRead:
    """
    Book a room for [check_in, check_out) in one transaction.

    Parameters
    ----------
    db : Session
        Database session; committed on success, rolled back on any failure.
    room_id : int
        Room to book.
    check_in : date
        First night of the stay.
    check_out : date
        Departure day (exclusive).
    customer_name : Optional[str]
        Caller's username; 'anonymousUser' when not provided.
    today : Optional[date]
        Reference date for validation, defaults to today.

    Returns
    -------
    BookingRead
        The confirmed booking with its derived total price.

    Raises
    ------
    ValidationError
        Out-of-policy dates.
    NotFoundError
        Unknown room.
    ConflictError
        Room flagged unavailable, overlapping dates, or lost a race with a
        concurrent booking of the same room.
    UnexpectedError
        Any other failure.
    """
    customer = customer_name or ANONYMOUS_CUSTOMER

    try:
        nights = validate_stay(check_in, check_out, today=today)

        room = _lock_room(db, room_id)
        if room is None:
            logger.warning("No room with id %s found", room_id)
            raise NotFoundError("Room not found")

        if not room.is_available:
            logger.warning("Room %s is not available", room_id)
            raise ConflictError("Room is not available")

        if conflicts.has_conflict(db, room.id, check_in, check_out):
            logger.warning(
                "Room %s has booking conflict for dates %s to %s", room_id, check_in, check_out
            )
            raise ConflictError("Room is already booked for selected dates")

        booking = models.Booking(
            customer_name=customer,
            check_in_date=check_in,
            check_out_date=check_out,
            status=models.BookingStatus.CONFIRMED,
            room=room,
        )
        db.add(booking)
        room.is_available = False
        db.commit()
    except ValidationError as exc:
        db.rollback()
        logger.warning("Invalid booking request for room %s: %s", room_id, exc.detail)
        raise
    except BookingError:
        db.rollback()
        raise
    except (IntegrityError, StaleDataError) as exc:
        db.rollback()
        logger.warning(
            "Concurrent write rejected booking of room %s (%s to %s): %s",
            room_id, check_in, check_out, exc,
        )
        raise ConflictError("Room already booked") from exc
    except Exception as exc:
        db.rollback()
        logger.exception("Unexpected error creating booking for room %s", room_id)
        raise UnexpectedError("Failed to create booking") from exc

    evict_read_caches(f"Booking {booking.id} was created")

    result = schemas.BookingRead.from_booking(booking)
    logger.info(
        "[NOTIFY] Booking created - ID: %s, Name: %s, Room: %s, Dates: %s to %s, "
        "Nights: %s, Total: $%s, Status: %s",
        result.id, result.customer_name, result.room_number, result.check_in_date,
        result.check_out_date, nights, result.total_price, result.status.value,
    )
    return result


def cancel_booking(db: Session, booking_id: int) -> None:
    """
    Cancel a confirmed booking and release its room.

    Cancellation is terminal and not idempotent: cancelling twice is a
    ConflictError and leaves state unchanged.

    Raises
    ------
    NotFoundError
        Unknown booking.
    ConflictError
        Booking already cancelled (including a concurrent cancel that won).
    DataIntegrityFault
        The booking's room no longer exists.
    UnexpectedError
        Any other failure.
    """
    try:
        booking = _lock_booking(db, booking_id)
        if booking is None:
            logger.warning("Booking with id %s not found", booking_id)
            raise NotFoundError("Booking not found")

        if booking.status == models.BookingStatus.CANCELLED:
            logger.warning("Booking %s is already cancelled", booking_id)
            raise ConflictError("Booking already cancelled")

        room = _lock_room(db, booking.room_id)
        if room is None:
            logger.error("Booking %s has no associated room (room_id=%s)", booking_id, booking.room_id)
            raise DataIntegrityFault()

        room_id = room.id
        room.is_available = True
        booking.status = models.BookingStatus.CANCELLED
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Concurrent cancel of booking %s rejected: %s", booking_id, exc)
        raise ConflictError("Booking already cancelled") from exc
    except Exception as exc:
        db.rollback()
        logger.exception("Failed to cancel booking %s", booking_id)
        raise UnexpectedError("Failed to cancel booking") from exc

    evict_read_caches(f"Booking {booking_id} was cancelled")
    logger.info("Cancelled booking %s, room %s is now available", booking_id, room_id)


def get_booking(db: Session, booking_id: int) -> schemas.BookingRead:
    """
    Return one booking, served from the ``bookings`` cache region when possible.

    Raises
    ------
    NotFoundError
        Unknown booking.
    DataIntegrityFault
        The booking's room no longer exists.
    UnexpectedError
        The store or the cache failed.
    """

    def load() -> dict:
        booking = db.query(models.Booking).filter(models.Booking.id == booking_id).first()
        if booking is None:
            logger.warning("Booking record with id %s not found", booking_id)
            raise NotFoundError("Booking not found")
        if booking.room is None:
            logger.error("Booking with ID %s has no associated room", booking_id)
            raise DataIntegrityFault()
        return schemas.BookingRead.from_booking(booking).model_dump(mode="json")

    try:
        data = bookings_cache.get_or_load(str(booking_id), load)
    except BookingError:
        raise
    except Exception as exc:
        logger.exception("Failed to fetch booking %s", booking_id)
        raise UnexpectedError("Failed to retrieve booking") from exc

    return schemas.BookingRead.model_validate(data)
