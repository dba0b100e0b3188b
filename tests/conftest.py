import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Must be set before any service module creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_hotel.db")

import fakeredis
import pytest

from common import cache


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    """
    Route every cache region to an in-process fake Redis server.

    A fresh server per test keeps cached reads from leaking between tests.
    """
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    monkeypatch.setattr(cache, "_redis_client", client)
    yield client
    client.flushall()
