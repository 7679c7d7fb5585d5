import fnmatch
import itertools
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from horaly.clock import FixedClock
from horaly.database import make_engine
from horaly.models.tables import Base, Coupons, Establishments, Services
from horaly.services.payments.gateway import ChargeResult
from horaly.errors import PaymentGatewayError

# Monday, 08:00 UTC
NOW = datetime(2030, 6, 3, 8, 0, tzinfo=timezone.utc)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]


def weekday_hours(start="09:00", end="18:00", days=WEEKDAYS) -> dict:
    return {day: {"open": True, "start": start, "end": end} for day in days}


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_establishment(db):
    counter = itertools.count(1)

    def _make(**kwargs) -> Establishments:
        n = next(counter)
        data = {
            "name": f"Studio {n}",
            "slug": f"studio-{n}",
            "timezone": "UTC",
            "working_hours": weekday_hours(),
            "slots_per_hour": 1,
            "booking_interval_minutes": 30,
        }
        data.update(kwargs)
        establishment = Establishments(**data)
        db.add(establishment)
        db.commit()
        return establishment

    return _make


@pytest.fixture
def make_service(db):
    def _make(establishment, **kwargs) -> Services:
        data = {
            "establishment_id": establishment.id,
            "name": "Haircut",
            "duration_minutes": 30,
            "price": Decimal("100.00"),
        }
        data.update(kwargs)
        service = Services(**data)
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(establishment, code="SAVE20", type="percentage", value="20", **kwargs) -> Coupons:
        coupon = Coupons(
            establishment_id=establishment.id,
            code=code,
            type=type,
            value=Decimal(value),
            **kwargs,
        )
        db.add(coupon)
        db.commit()
        return coupon

    return _make


# ── Fakes ────────────────────────────────────────────────────────────────


class FakeGateway:
    """In-memory charge provider."""

    def __init__(self, initial_status="pending", fail=False):
        self.initial_status = initial_status
        self.fail = fail
        self.statuses: dict[str, str] = {}
        self.created: list[dict] = []
        self.status_calls = 0

    def create_charge(self, amount, idempotency_key, description, expires_at):
        if self.fail:
            raise PaymentGatewayError("Gateway unavailable")
        ref = f"ch_{len(self.created) + 1}"
        self.created.append({
            "ref": ref,
            "amount": amount,
            "idempotency_key": idempotency_key,
            "expires_at": expires_at,
        })
        self.statuses[ref] = self.initial_status
        return ChargeResult(ref=ref, status=self.initial_status, qr_payload=f"pix-qr-{ref}")

    def get_status(self, ref):
        self.status_calls += 1
        return ChargeResult(ref=ref, status=self.statuses[ref])


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        return [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.ops]


class FakeRedis:
    """The sorted-set subset of redis-py used by the slot store."""

    def __init__(self):
        self.zsets: dict[str, dict[str, float]] = {}

    def pipeline(self):
        return FakePipeline(self)

    def delete(self, *keys):
        return sum(1 for key in keys if self.zsets.pop(key, None) is not None)

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def expire(self, key, seconds):
        return key in self.zsets

    def exists(self, key):
        return int(key in self.zsets)

    def zrangebyscore(self, key, low, high):
        low = float("-inf") if low == "-inf" else float(low)
        high = float("inf") if high == "+inf" else float(high)
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [member.encode() for member, score in items if low <= score <= high]

    def scan_iter(self, match):
        return [key for key in list(self.zsets) if fnmatch.fnmatch(key, match)]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def events(monkeypatch):
    """Capture emitted notification events."""
    emitted: list[tuple[str, dict]] = []
    monkeypatch.setattr(
        "horaly.services.events.emit_event",
        lambda event_type, payload: emitted.append((event_type, payload)),
    )
    return emitted
