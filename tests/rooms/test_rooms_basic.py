import os
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.exc import IntegrityError

from hotel_service import catalog, main, schemas
from hotel_service.main import app
from hotel_service.auth import SECRET_KEY, ALGORITHM
from hotel_service.database import Base, SessionLocal, engine
from hotel_service.errors import ConflictError

client = TestClient(app)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def make_token(username: str, role: str) -> str:
    payload = {
        "sub": username,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('admin1', 'admin')}"}


def test_create_room_requires_auth():
    payload = {"room_number": "101", "capacity": 2, "price": "100.00"}
    res = client.post("/api/v1/rooms", json=payload)
    assert res.status_code in (401, 403)


def test_invalid_token_is_rejected():
    payload = {"room_number": "101", "capacity": 2, "price": "100.00"}
    res = client.post("/api/v1/rooms", json=payload, headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_regular_user_cannot_create_room():
    token = make_token("user1", "user")
    headers = {"Authorization": f"Bearer {token}"}
    payload = {"room_number": "101", "capacity": 2, "price": "100.00"}
    res = client.post("/api/v1/rooms", json=payload, headers=headers)
    assert res.status_code == 403


def test_admin_can_create_room():
    payload = {"room_number": "101", "capacity": 2, "price": "100.00"}
    res = client.post("/api/v1/rooms", json=payload, headers=admin_headers())
    assert res.status_code == 201
    body = res.json()
    assert body["room_number"] == "101"
    assert body["capacity"] == 2
    assert Decimal(body["price"]) == Decimal("100.00")
    assert body["is_available"] is True


def test_duplicate_room_number_fails():
    payload = {"room_number": "101", "capacity": 2, "price": "100.00"}
    res1 = client.post("/api/v1/rooms", json=payload, headers=admin_headers())
    assert res1.status_code == 201

    res2 = client.post("/api/v1/rooms", json={**payload, "capacity": 4}, headers=admin_headers())
    assert res2.status_code == 400
    assert res2.json()["detail"] == "Room number already exists"


@pytest.mark.parametrize(
    "payload",
    [
        {"room_number": "", "capacity": 2, "price": "100.00"},
        {"room_number": "1 01", "capacity": 2, "price": "100.00"},
        {"room_number": "A" * 21, "capacity": 2, "price": "100.00"},
        {"room_number": "101", "capacity": 0, "price": "100.00"},
        {"room_number": "101", "capacity": 101, "price": "100.00"},
        {"room_number": "101", "capacity": 2, "price": "0"},
        {"room_number": "101", "capacity": 2, "price": "-5.00"},
        {"room_number": "101", "capacity": 2, "price": "10.999"},
        {"room_number": "101", "capacity": 2, "price": "1234567.00"},
    ],
)
def test_invalid_room_payload_returns_400(payload):
    res = client.post("/api/v1/rooms", json=payload, headers=admin_headers())
    assert res.status_code == 400


def test_list_rooms_is_public_and_only_available():
    client.post("/api/v1/rooms", json={"room_number": "101", "capacity": 2, "price": "100.00"}, headers=admin_headers())
    res_b = client.post("/api/v1/rooms", json={"room_number": "102", "capacity": 3, "price": "150.00"}, headers=admin_headers())
    room_102 = res_b.json()

    user_headers = {"Authorization": f"Bearer {make_token('user1', 'user')}"}
    check_in = date.today() + timedelta(days=1)
    res_booking = client.post(
        "/api/v1/bookings",
        json={
            "room_id": room_102["id"],
            "check_in_date": check_in.isoformat(),
            "check_out_date": (check_in + timedelta(days=1)).isoformat(),
        },
        headers=user_headers,
    )
    assert res_booking.status_code == 201

    res_list = client.get("/api/v1/rooms")
    assert res_list.status_code == 200
    assert [r["room_number"] for r in res_list.json()] == ["101"]


def test_new_room_appears_after_listing_was_cached():
    client.post("/api/v1/rooms", json={"room_number": "101", "capacity": 2, "price": "100.00"}, headers=admin_headers())
    assert len(client.get("/api/v1/rooms").json()) == 1

    client.post("/api/v1/rooms", json={"room_number": "102", "capacity": 2, "price": "100.00"}, headers=admin_headers())
    assert {r["room_number"] for r in client.get("/api/v1/rooms").json()} == {"101", "102"}


def test_empty_listing_returns_empty_list():
    res = client.get("/api/v1/rooms")
    assert res.status_code == 200
    assert res.json() == []


def test_unique_constraint_violation_maps_to_conflict(monkeypatch):
    db = SessionLocal()
    try:
        catalog.create_room(db, schemas.RoomCreate(room_number="101", capacity=2, price=Decimal("100.00")))

        # simulate losing the race between the duplicate pre-check and the insert
        original_query = db.query

        class NoMatch:
            def __init__(self, query):
                self._query = query

            def filter(self, *args, **kwargs):
                return self

            def first(self):
                return None

        monkeypatch.setattr(db, "query", lambda *args: NoMatch(original_query(*args)))

        with pytest.raises(ConflictError) as excinfo:
            catalog.create_room(db, schemas.RoomCreate(room_number="101", capacity=2, price=Decimal("90.00")))
        assert isinstance(excinfo.value.__cause__, IntegrityError)
    finally:
        db.close()


def test_health_endpoint():
    res = client.get("/")
    assert res.status_code == 200
    assert res.json() == {"service": "hotel", "status": "running"}


def test_run_serves_app_with_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.setenv("PORT", "9001")

    main.run()

    assert calls == [(app, {"host": "0.0.0.0", "port": 9001, "log_config": None})]
