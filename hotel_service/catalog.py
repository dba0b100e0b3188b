import logging
from typing import List

import redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.cache import rooms_cache

from . import models, schemas
from .errors import BookingError, ConflictError, UnexpectedError

logger = logging.getLogger(__name__)

AVAILABLE_ROOMS_KEY = "available"


def create_room(db: Session, room_in: schemas.RoomCreate) -> schemas.RoomRead:
    """
    Create a new room. New rooms always start available.

    Parameters
    ----------
    db : Session
        Database session.
    room_in : RoomCreate
        Validated room details.

    Returns
    -------
    RoomRead
        The created room.

    Raises
    ------
    ConflictError
        If a room with the same number already exists, including when a
        concurrent insert wins the unique constraint.
    UnexpectedError
        Any other failure.
    """
    try:
        # ensure unique room number
        existing = (
            db.query(models.Room)
            .filter(models.Room.room_number == room_in.room_number)
            .first()
        )
        if existing:
            raise ConflictError("Room number already exists")

        room = models.Room(
            room_number=room_in.room_number,
            capacity=room_in.capacity,
            price=room_in.price,
            is_available=True,
        )
        db.add(room)
        db.commit()
        db.refresh(room)
    except ConflictError:
        db.rollback()
        logger.warning("Duplicate room number: %s", room_in.room_number)
        raise
    except BookingError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Duplicate room number: %s (%s)", room_in.room_number, exc.orig)
        raise ConflictError("Room number already exists") from exc
    except Exception as exc:
        db.rollback()
        logger.exception("Error creating room %s", room_in.room_number)
        raise UnexpectedError("Failed to create room") from exc

    try:
        rooms_cache.evict_all()
    except redis.RedisError as exc:
        logger.error("Cache eviction failed after creating room %s: %s", room.id, exc)
        raise UnexpectedError(
            f"Room {room.id} was created but cached reads could not be refreshed"
        ) from exc

    logger.info("Room created - ID: %s, Number: %s, Price: $%s", room.id, room.room_number, room.price)
    return schemas.RoomRead.model_validate(room)


def get_all_available(db: Session) -> List[schemas.RoomRead]:
    """
    Return every room whose availability flag is set, in store order.

    Served from the ``rooms`` cache region; the first caller after an
    eviction pays the query.
    """

    def load() -> list:
        logger.info("Fetching all available rooms")
        rooms = db.query(models.Room).filter(models.Room.is_available.is_(True)).all()
        return [schemas.RoomRead.model_validate(r).model_dump(mode="json") for r in rooms]

    try:
        data = rooms_cache.get_or_load(AVAILABLE_ROOMS_KEY, load)
    except Exception as exc:
        logger.exception("Failed to fetch rooms")
        raise UnexpectedError("Failed to retrieve rooms") from exc

    return [schemas.RoomRead.model_validate(item) for item in data]
