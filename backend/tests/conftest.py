# backend/tests/conftest.py
"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, an in-memory Redis,
a scripted payment gateway and a clock frozen on Monday 2026-10-12 08:00 UTC
(one week before the Monday used for slot lookups).
"""

import itertools
import json
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from portfolio.config import Settings
from portfolio.context import AppContext
from portfolio.database import create_db_engine, make_session_factory
from portfolio.errors import GatewayError
from portfolio.main import create_app
from portfolio.models import Base, Resources, Services
from portfolio.services.events import NOTIFY_QUEUE
from portfolio.services.payment_gateway import GatewayOrder
from portfolio.utils.auth_data import sign_auth_data

NOW = datetime(2026, 10, 12, 8, 0, tzinfo=timezone.utc)
SLOT_DATE = "2026-10-19"  # Monday
PAYMENT_SECRET = "test_payment_secret"
AUTH_SECRET = "test_auth_secret"


# ============================================================
# FAKES
# ============================================================

class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.calls = []

    def incr(self, key):
        self.calls.append(("incr", key))
        return self

    def ttl(self, key):
        self.calls.append(("ttl", key))
        return self

    def execute(self):
        results = [getattr(self.redis, name)(key) for name, key in self.calls]
        self.calls = []
        return results


class FakeRedis:
    """The subset of redis.Redis used by the app (lists, counters, ping)."""

    def __init__(self):
        self.lists = defaultdict(list)
        self.counters = {}
        self.ttls = {}
        self._lock = threading.Lock()

    def ping(self):
        return True

    def rpush(self, key, *values):
        with self._lock:
            self.lists[key].extend(values)
            return len(self.lists[key])

    def lpop(self, key):
        with self._lock:
            items = self.lists.get(key)
            return items.pop(0) if items else None

    def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def ttl(self, key):
        if key not in self.counters:
            return -2
        return self.ttls.get(key, -1)

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def pipeline(self):
        return FakePipeline(self)


class AsyncFakeRedis:
    """Async list operations for the notifier consumer."""

    def __init__(self):
        self.lists = defaultdict(list)

    async def rpush(self, key, *values):
        self.lists[key].extend(values)
        return len(self.lists[key])

    async def lpop(self, key):
        items = self.lists.get(key)
        return items.pop(0) if items else None


class FakeGateway:
    def __init__(self):
        self.calls = []
        self.orders = {}
        self.fail = False
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create_order(self, amount, currency, receipt, notes=None):
        with self._lock:
            self.calls.append({
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            })
            if self.fail:
                raise GatewayError("Payment provider unavailable")
            order = GatewayOrder(
                id=f"order_{next(self._ids)}",
                amount=amount,
                currency=currency,
                notes={k: str(v) for k, v in (notes or {}).items()},
            )
            self.orders[order.id] = order
            return order

    def fetch_order(self, order_id):
        order = self.orders.get(order_id)
        if order is None:
            raise GatewayError("Unable to verify payment order")
        return order


def emitted_events(redis: FakeRedis) -> list[dict]:
    return [json.loads(raw) for raw in redis.lists[NOTIFY_QUEUE]]


# ============================================================
# CONTEXT
# ============================================================

def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        payment_key_id="rzp_test",
        payment_key_secret=PAYMENT_SECRET,
        auth_secret=AUTH_SECRET,
        client_url="http://localhost:3000",
        meeting_link_base="https://meet.example.com/room",
        notifier_enabled=False,
        reaper_enabled=False,
        rate_limit_enabled=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def make_ctx(tmp_path, clock):
    engines = []

    def _make(**overrides) -> AppContext:
        settings = make_settings(tmp_path, **overrides)
        engine = create_db_engine(settings.resolved_database_url)
        Base.metadata.create_all(bind=engine)
        engines.append(engine)
        return AppContext(
            settings=settings,
            engine=engine,
            session_factory=make_session_factory(engine),
            redis=FakeRedis(),
            gateway=FakeGateway(),
            clock=clock,
        )

    yield _make

    for engine in engines:
        engine.dispose()


@pytest.fixture
def ctx(make_ctx):
    return make_ctx()


@pytest.fixture
def db(ctx):
    session = ctx.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(ctx):
    with TestClient(create_app(ctx=ctx)) as c:
        yield c


def auth_header(user_id: str = "user_1", email: str = "customer@example.com") -> dict:
    return {"Authorization": f"Bearer {sign_auth_data(AUTH_SECRET, user_id, email)}"}


# ============================================================
# SEED DATA
# ============================================================

def seed_service(db, **overrides) -> Services:
    values = dict(
        title="Strategy Call",
        price=999,
        currency="INR",
        duration_min=30,
        available_days=json.dumps(["Monday"]),
        time_slots=json.dumps([{"start": "09:00", "end": "12:00"}]),
        is_active=True,
        total_bookings=0,
    )
    values.update(overrides)
    service = Services(**values)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def seed_resource(db, **overrides) -> Resources:
    values = dict(
        title="Interview Prep Guide",
        price=499,
        currency="INR",
        file_url="https://files.example.com/interview-guide.pdf",
        is_active=True,
        downloads=0,
    )
    values.update(overrides)
    resource = Resources(**values)
    db.add(resource)
    db.commit()
    db.refresh(resource)
    return resource


@pytest.fixture
def service(db):
    return seed_service(db)


@pytest.fixture
def resource(db):
    return seed_resource(db)
