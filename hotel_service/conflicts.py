from datetime import date

from sqlalchemy.orm import Session

from . import models


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """
    Return True if the half-open ranges [a_start, a_end) and [b_start, b_end) overlap.

    Touching ranges (one ends the day the other starts) do not overlap.
    """
    return a_start < b_end and b_start < a_end


def has_conflict(
    db: Session,
    room_id: int,
    check_in: date,
    check_out: date,
) -> bool:
    """
    Check if there is any overlapping booking on the same room.

    Overlaps are detected for all bookings in the given room where:
    - status != CANCELLED
    - existing.check_out_date > check_in
    - existing.check_in_date < check_out

    This is a pure read on the caller's session, so it runs inside the
    caller's transaction and sees the same snapshot as the later insert.

    Parameters
    ----------
    db : Session
        Database session.
    room_id : int
        Room identifier.
    check_in : date
        Proposed check-in date.
    check_out : date
        Proposed check-out date (exclusive).

    Returns
    -------
    bool
        True if there is at least one conflicting booking, False otherwise.
    """
    q = (
        db.query(models.Booking)
        .filter(models.Booking.room_id == room_id)
        .filter(models.Booking.status != models.BookingStatus.CANCELLED)
        .filter(models.Booking.check_out_date > check_in)
        .filter(models.Booking.check_in_date < check_out)
    )
    return db.query(q.exists()).scalar()
