import logging
import os
import time
from datetime import date
from typing import Dict, List

from fastapi import Depends, FastAPI, HTTPException, Query, status, Request, Response, APIRouter
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import uvicorn
from sqlalchemy.orm import Session

from common.logging_config import configure_logging

from . import catalog, conflicts, coordinator, schemas
from .auth import require_roles, username_from_header
from .database import Base, engine, get_db
from .errors import BookingError, ValidationError

configure_logging()
logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Hotel Booking Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "hotel"


def error_body(request: Request, status_code: int, detail) -> dict:
    return {
        "service": SERVICE_NAME,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "detail": detail,
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # malformed requests are client faults: 400, not FastAPI's default 422
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, status.HTTP_400_BAD_REQUEST, jsonable_encoder(exc.errors())),
    )


@app.exception_handler(BookingError)
async def booking_exception_handler(request: Request, exc: BookingError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.detail),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body(request, 500, "Internal server error"),
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    api = request.url.path
    user = username_from_header(request.headers.get("Authorization"))
    started = time.perf_counter()

    logger.info("Received API request %s %s by %s", request.method, api, user)
    try:
        response = await call_next(request)
    except Exception as exc:
        logger.error("Exception in %s %s - %s", request.method, api, exc)
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "Completed API request %s %s by %s in %.0f ms with status %s",
        request.method, api, user, elapsed_ms, response.status_code,
    )
    return response


@app.get("/")
def root():
    """
    Health-check endpoint for the Hotel service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": "hotel", "status": "running"}


admin_only = require_roles("admin")

booking_roles = require_roles("admin", "user")


# ---------- Rooms ----------


@router_v1.get("/rooms", response_model=List[schemas.RoomRead])
def list_available_rooms(db: Session = Depends(get_db)):
    """
    List all rooms that are currently available for booking.

    Access
    ------
    - Public.

    Returns
    -------
    List[RoomRead]
        Rooms whose availability flag is set; empty list if none.
    """
    return catalog.get_all_available(db)


@router_v1.post("/rooms", response_model=schemas.RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    room_in: schemas.RoomCreate,
    db: Session = Depends(get_db),
    _: Dict = Depends(admin_only),
):
    """
    Add a new room to the inventory.

    Access
    ------
    - Allowed roles: admin.

    Raises
    ------
    ConflictError
        If the room number already exists (HTTP 400).
    """
    return catalog.create_room(db, room_in)


# ---------- Bookings ----------


@router_v1.get("/bookings/availability", response_model=schemas.RoomAvailability)
def check_availability(
    room_id: int = Query(..., ge=1),
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    db: Session = Depends(get_db),
    _: Dict = Depends(booking_roles),
):
    """
    Check whether any confirmed booking of a room overlaps a date range.

    This is a read-only view of the conflict check; it does not consider
    the room's availability flag.

    Raises
    ------
    ValidationError
        If check_out_date is not after check_in_date (HTTP 400).
    """
    if check_out_date <= check_in_date:
        raise ValidationError("check_out_date must be after check_in_date")
    busy = conflicts.has_conflict(db, room_id, check_in_date, check_out_date)
    return {"room_id": room_id, "available": not busy}


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    _: Dict = Depends(booking_roles),
):
    """
    Get a booking record by id.

    Access
    ------
    - Allowed roles: admin, user.

    Raises
    ------
    NotFoundError
        Unknown booking (HTTP 404).
    DataIntegrityFault
        The booking's room no longer exists (HTTP 500).
    """
    return coordinator.get_booking(db, booking_id)


@router_v1.post("/bookings", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    booking_in: schemas.BookingCreate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(booking_roles),
):
    """
    Book a room for the authenticated caller.

    Access
    ------
    - Allowed roles: admin, user.

    Behavior
    --------
    - The booking's customer name is the caller's username.
    - Rejects past check-in dates and stays outside 1..30 nights.
    - Rejects rooms flagged unavailable and overlapping dates.

    Returns
    -------
    BookingRead
        The confirmed booking, including its total price.
    """
    return coordinator.create_booking(
        db,
        booking_in.room_id,
        booking_in.check_in_date,
        booking_in.check_out_date,
        customer_name=claims["username"],
    )


@router_v1.put("/bookings/cancel/{booking_id}", status_code=status.HTTP_202_ACCEPTED)
def cancel_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    _: Dict = Depends(booking_roles),
):
    """
    Cancel a booking and release its room.

    Access
    ------
    - Allowed roles: admin, user.

    Raises
    ------
    NotFoundError
        Unknown booking (HTTP 404).
    ConflictError
        Booking already cancelled (HTTP 400).
    DataIntegrityFault
        The booking's room no longer exists (HTTP 500).
    """
    coordinator.cancel_booking(db, booking_id)
    return Response(status_code=status.HTTP_202_ACCEPTED)


app.include_router(router_v1)


def run() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    run()
