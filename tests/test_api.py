import json
from unittest.mock import patch

import pytest
import pytest_asyncio
import stripe
from httpx import ASGITransport, AsyncClient

from app.core.db import get_session
from app.core.security import Role, create_access_token
from app.core.timeutils import WEEKDAYS, weekday_name
from app.main import app


def _auth(user_id: str, role: Role) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


BARBER = _auth("barber-1", Role.PROVIDER)
CUSTOMER = _auth("customer-1", Role.CUSTOMER)
OTHER = _auth("customer-2", Role.CUSTOMER)
ADMIN = _auth("admin-1", Role.ADMIN)


@pytest_asyncio.fixture
async def client(session_maker):
    async def override_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _provider_with_slots(client, day):
    resp = await client.post("/api/v1/providers/me", json={"name": "Fade Masters"}, headers=BARBER)
    assert resp.status_code == 201
    provider_id = resp.json()["id"]
    resp = await client.put(
        f"/api/v1/providers/{provider_id}/templates/{weekday_name(day)}",
        json={"start_times": [540, 570, 600]},
        headers=BARBER,
    )
    assert resp.status_code == 200
    resp = await client.get(f"/api/v1/providers/{provider_id}/slots", params={"date": day.isoformat()})
    assert resp.status_code == 200
    return provider_id, resp.json()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_booking_requires_token(client):
    resp = await client.post("/api/v1/bookings", json={"slot_id": 1, "service_name": "Haircut"})
    assert resp.status_code == 401
    resp = await client.post(
        "/api/v1/bookings",
        json={"slot_id": 1, "service_name": "Haircut"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_slots_generated_on_first_read(client, booking_day):
    provider_id, day = await _provider_with_slots(client, booking_day)
    assert day["status"] == "generated"
    assert [s["start_time"] for s in day["available"]] == [540, 570, 600]
    assert day["booked"] == [] and day["withdrawn"] == []

    resp = await client.get(f"/api/v1/providers/{provider_id}/slots", params={"date": booking_day.isoformat()})
    assert resp.json()["status"] == "existing"


@pytest.mark.asyncio
async def test_malformed_date_is_rejected(client, booking_day):
    provider_id, _ = await _provider_with_slots(client, booking_day)
    resp = await client.get(f"/api/v1/providers/{provider_id}/slots", params={"date": "someday"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "InvalidInputError"


@pytest.mark.asyncio
async def test_book_pay_and_list(client, booking_day):
    _, day = await _provider_with_slots(client, booking_day)
    slot_id = day["available"][0]["id"]

    resp = await client.post(
        "/api/v1/bookings",
        json={"slot_id": slot_id, "service_name": "Haircut", "customer_name": "Sam", "customer_email": "sam@example.org"},
        headers=CUSTOMER,
    )
    assert resp.status_code == 201
    body = resp.json()
    booking_id = body["booking"]["id"]
    assert body["booking"]["status"] == "pending"
    assert body["appointment"]["customer_name"] == "Sam"
    assert body["warnings"] == []

    resp = await client.post("/api/v1/bookings", json={"slot_id": slot_id, "service_name": "Haircut"}, headers=OTHER)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "SlotAlreadyBooked"

    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "payment_intent": "pi_1",
                "payment_status": "paid",
                "metadata": {"bookingId": str(booking_id), "slotId": str(slot_id)},
            }
        },
    }
    with patch("stripe.Webhook.construct_event"), patch(
        "app.api.routes.payments.send_booking_confirmation_email"
    ) as send:
        resp = await client.post(
            "/api/v1/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=ok"},
        )
    assert resp.status_code == 200
    assert resp.json()["handled"] is True
    send.assert_called_once()
    assert send.call_args.kwargs["to_email"] == "sam@example.org"

    resp = await client.get("/api/v1/bookings/me", headers=CUSTOMER)
    [row] = resp.json()
    assert row["booking"]["status"] == "confirmed"
    assert row["slot"]["booked"] is True

    resp = await client.get("/api/v1/appointments/me", headers=CUSTOMER)
    assert [a["status"] for a in resp.json()] == ["paid"]


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(client):
    bad = stripe.SignatureVerificationError("bad", "sig")
    with patch("stripe.Webhook.construct_event", side_effect=bad):
        resp = await client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_cancel_and_complete_flow(client, booking_day):
    provider_id, day = await _provider_with_slots(client, booking_day)
    first, second = day["available"][0]["id"], day["available"][1]["id"]

    booking = (
        await client.post("/api/v1/bookings", json={"slot_id": first, "service_name": "Haircut"}, headers=CUSTOMER)
    ).json()["booking"]
    resp = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=OTHER)
    assert resp.status_code == 403
    resp = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=CUSTOMER)
    assert resp.status_code == 200
    assert resp.json()["booking"]["status"] == "cancelled"

    other = (
        await client.post("/api/v1/bookings", json={"slot_id": second, "service_name": "Trim"}, headers=OTHER)
    ).json()
    resp = await client.post(f"/api/v1/appointments/{other['appointment']['id']}/complete", headers=BARBER)
    assert resp.status_code == 200
    assert resp.json()["appointment"]["status"] == "completed"

    resp = await client.get(
        f"/api/v1/providers/{provider_id}/appointments", params={"status": "completed"}, headers=BARBER
    )
    assert [a["id"] for a in resp.json()] == [other["appointment"]["id"]]


@pytest.mark.asyncio
async def test_withdraw_slot_and_templates(client, booking_day):
    provider_id, day = await _provider_with_slots(client, booking_day)
    slot_id = day["available"][2]["id"]

    resp = await client.patch(f"/api/v1/slots/{slot_id}/availability", json={"available": False}, headers=CUSTOMER)
    assert resp.status_code == 403
    resp = await client.patch(f"/api/v1/slots/{slot_id}/availability", json={"available": False}, headers=BARBER)
    assert resp.status_code == 200
    assert resp.json()["available"] is False

    resp = await client.get(f"/api/v1/providers/{provider_id}/templates")
    assert [t["weekday"] for t in resp.json()] == [weekday_name(booking_day)]


@pytest.mark.asyncio
async def test_admin_sweeps_require_admin(client, booking_day):
    provider_id, _ = await _provider_with_slots(client, booking_day)

    resp = await client.post("/api/v1/admin/reconcile", headers=BARBER)
    assert resp.status_code == 403

    resp = await client.post("/api/v1/admin/reconcile", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["corrected"] == 0

    resp = await client.post(
        "/api/v1/admin/reconcile",
        json={"provider_id": provider_id, "date": booking_day.isoformat()},
        headers=ADMIN,
    )
    assert resp.json()["runs"] == 1
    assert resp.json()["examined"] == 3

    resp = await client.post("/api/v1/admin/reconcile", json={"provider_id": provider_id}, headers=ADMIN)
    assert resp.status_code == 422

    for path in ("cleanup", "expire-reservations", "sync-appointments"):
        resp = await client.post(f"/api/v1/admin/{path}", headers=ADMIN)
        assert resp.status_code == 200, path


@pytest.mark.asyncio
async def test_read_single_weekday_template(client, booking_day):
    provider_id, _ = await _provider_with_slots(client, booking_day)
    weekday = weekday_name(booking_day)

    resp = await client.get(f"/api/v1/providers/{provider_id}/templates/{weekday.upper()}")
    assert resp.status_code == 200
    assert resp.json()["start_times"] == [540, 570, 600]

    unset = next(d for d in WEEKDAYS if d != weekday)
    resp = await client.get(f"/api/v1/providers/{provider_id}/templates/{unset}")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "TemplateNotFound"


@pytest.mark.asyncio
async def test_customer_profile_placeholder_then_update(client):
    resp = await client.get("/api/v1/customers/me", headers=CUSTOMER)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Guest User"
    assert resp.json()["user_id"] == "customer-1"

    resp = await client.put(
        "/api/v1/customers/me",
        json={"name": "Sam Carter", "email": "sam@example.com"},
        headers=CUSTOMER,
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "Sam Carter"

    resp = await client.get("/api/v1/customers/me", headers=CUSTOMER)
    assert resp.json()["email"] == "sam@example.com"

    resp = await client.get("/api/v1/customers/me")
    assert resp.status_code == 401
