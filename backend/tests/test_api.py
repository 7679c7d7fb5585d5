import json
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from horaly.clock import get_clock
from horaly.config import settings
from horaly.database import get_db
from horaly.main import app
from horaly.redis_client import get_redis
from horaly.services.payments import get_gateway
from horaly.services.payments.webhook_security import compute_hmac_sha256

from conftest import FakeGateway

SLOT = "2030-06-10T09:00:00"


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, clock, gateway, events):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_redis] = lambda: None
    # no context manager: the lifespan (table creation, sweeper) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ids(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(establishment)
    make_coupon(establishment, code="SAVE20")
    deposit_establishment = make_establishment(
        booking_fee_enabled=True,
        booking_fee_type="fixed",
        booking_fee_amount=Decimal("25.00"),
    )
    deposit_service = make_service(deposit_establishment)
    result = {
        "establishment": establishment.id,
        "service": service.id,
        "deposit_establishment": deposit_establishment.id,
        "deposit_service": deposit_service.id,
    }
    # SQLite: release the setup session before the app writes
    db.close()
    return result


def booking_body(establishment_id, service_id, phone="+5511977770000", **extra):
    body = {
        "establishment_id": establishment_id,
        "service_id": service_id,
        "scheduled_at": SLOT,
        "customer": {"phone": phone, "name": "Rita"},
    }
    body.update(extra)
    return body


def test_day_slots(client, ids):
    resp = client.get("/slots/day", params={
        "establishment_id": ids["establishment"],
        "service_id": ids["service"],
        "date": "2030-06-10",
    })

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "available"
    assert data["service_duration_min"] == 30
    assert data["slots"][0] == {"time": "09:00", "status": "available"}
    assert data["slots"][-1]["time"] == "17:30"


def test_calendar_defaults_to_thirty_days(client, ids):
    resp = client.get("/slots/calendar", params={
        "establishment_id": ids["establishment"],
        "service_id": ids["service"],
    })

    assert resp.status_code == 200
    data = resp.json()
    assert data["start_date"] == "2030-06-03"
    assert len(data["days"]) == 30


def test_invalid_range_is_422(client, ids):
    resp = client.get("/slots/calendar", params={
        "establishment_id": ids["establishment"],
        "service_id": ids["service"],
        "start_date": "2030-06-10",
        "end_date": "2030-06-01",
    })

    assert resp.status_code == 422
    assert resp.json()["code"] == "invalid_range"


def test_reserve_ignores_client_prices(client, ids):
    body = booking_body(
        ids["establishment"], ids["service"],
        coupon_code="SAVE20", discount_amount="100.00", final_price="0",
    )

    resp = client.post("/appointments/", json=body)

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "confirmed"
    assert Decimal(data["discount_amount"]) == Decimal("20.00")
    assert Decimal(data["final_price"]) == Decimal("80.00")

    fetched = client.get(f"/appointments/{data['id']}")
    assert fetched.json()["status"] == "confirmed"


def test_second_booking_of_full_slot_is_409(client, ids):
    first = client.post("/appointments/", json=booking_body(ids["establishment"], ids["service"]))
    assert first.status_code == 201

    resp = client.post(
        "/appointments/",
        json=booking_body(ids["establishment"], ids["service"], phone="+5511977770001"),
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "slot_full"


def test_invalid_coupon_reason_is_returned(client, ids):
    resp = client.post("/coupons/validate", json={
        "establishment_id": ids["establishment"],
        "service_id": ids["service"],
        "code": "NOPE",
    })

    assert resp.status_code == 422
    assert resp.json()["code"] == "coupon_invalid"
    assert resp.json()["reason"] == "not_found"


def test_coupon_preview(client, ids):
    resp = client.post("/coupons/validate", json={
        "establishment_id": ids["establishment"],
        "service_id": ids["service"],
        "code": "save20",
    })

    assert resp.status_code == 200
    assert Decimal(resp.json()["final_price"]) == Decimal("80.00")


def test_cancel_and_unknown_appointment(client, ids):
    created = client.post("/appointments/", json=booking_body(ids["establishment"], ids["service"]))
    appointment_id = created.json()["id"]

    resp = client.post(f"/appointments/{appointment_id}/cancel")
    assert resp.status_code == 200
    assert resp.json()["cancellation_reason"] == "cancelled_by_customer"

    assert client.get("/appointments/9999").status_code == 404


def test_deposit_flow_with_webhook(client, ids, gateway):
    created = client.post(
        "/appointments/",
        json=booking_body(ids["deposit_establishment"], ids["deposit_service"]),
    )
    assert created.json()["status"] == "pending"
    appointment_id = created.json()["id"]

    deposit = client.post("/payments/deposits", json={"appointment_id": appointment_id})
    assert deposit.status_code == 201
    assert deposit.json()["ref"] == "ch_1"
    assert Decimal(deposit.json()["amount"]) == Decimal("25.00")

    hook = client.post("/payments/webhook", json={"ref": "ch_1", "status": "approved"})
    assert hook.json() == {"ok": True, "payment_status": "paid"}

    assert client.get(f"/appointments/{appointment_id}").json()["status"] == "confirmed"
    assert client.get("/payments/ch_1/status").json()["payment_status"] == "paid"


def test_webhook_resolves_provider_notification_by_polling(client, ids, gateway):
    created = client.post(
        "/appointments/",
        json=booking_body(ids["deposit_establishment"], ids["deposit_service"]),
    )
    client.post("/payments/deposits", json={"appointment_id": created.json()["id"]})
    gateway.statuses["ch_1"] = "rejected"

    hook = client.post("/payments/webhook", json={"type": "payment", "data": {"id": "ch_1"}})

    assert hook.json()["payment_status"] == "rejected"
    assert gateway.status_calls == 1


def test_webhook_signature(client, ids, monkeypatch):
    monkeypatch.setattr(settings, "webhook_secret", "s3cret")
    body = json.dumps({"ref": "ch_404", "status": "approved"}).encode()

    unsigned = client.post("/payments/webhook", content=body)
    assert unsigned.status_code == 403
    assert unsigned.json()["code"] == "invalid_signature"

    signed = client.post(
        "/payments/webhook",
        content=body,
        headers={"X-Signature": "sha256=" + compute_hmac_sha256("s3cret", body)},
    )
    # signature accepted, reference unknown
    assert signed.status_code == 404


def test_malformed_webhook_is_acknowledged(client, ids):
    resp = client.post("/payments/webhook", content=b"not json")
    assert resp.status_code == 200
    assert resp.json()["ok"] is False


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.fixture
def sao_paulo_evening(db, make_establishment, make_service, make_coupon, clock):
    establishment = make_establishment(timezone="America/Sao_Paulo")
    service = make_service(establishment)
    make_coupon(establishment, code="LASTDAY", valid_until=date(2030, 6, 3))
    result = {"establishment": establishment.id, "service": service.id}
    db.close()
    # Tuesday 01:00 UTC is still Monday 22:00 in Sao Paulo
    clock.advance(hours=17)
    return result


def test_calendar_starts_on_the_local_date(client, sao_paulo_evening):
    resp = client.get("/slots/calendar", params={
        "establishment_id": sao_paulo_evening["establishment"],
        "service_id": sao_paulo_evening["service"],
    })

    assert resp.status_code == 200
    data = resp.json()
    assert data["start_date"] == "2030-06-03"
    assert data["days"][0] == {"date": "2030-06-03", "status": "past"}
    assert data["days"][1] == {"date": "2030-06-04", "status": "available"}


def test_coupon_validity_uses_the_local_date(client, sao_paulo_evening):
    resp = client.post("/coupons/validate", json={
        "establishment_id": sao_paulo_evening["establishment"],
        "service_id": sao_paulo_evening["service"],
        "code": "LASTDAY",
    })

    assert resp.status_code == 200
    assert Decimal(resp.json()["final_price"]) == Decimal("80.00")
