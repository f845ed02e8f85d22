from conftest import PAYMENT_SECRET, SLOT_DATE, auth_header, emitted_events
from portfolio.models import Services
from portfolio.services.signature import compute_signature
from portfolio.utils.auth_data import sign_auth_data

CUSTOMER = {"name": "Asha Rao", "email": "asha@example.com", "phone": "+91 90000 00000"}


def _book(client, service_id, when="2026-10-19T10:00:00Z", headers=None):
    return client.post(
        "/bookings",
        json={
            "serviceId": service_id,
            "scheduledDateTime": when,
            "customerInfo": CUSTOMER,
            "requirements": ["resume review"],
        },
        headers=headers or {},
    )


def _confirm(client, booking_id, order_id, payment_id="pay_1"):
    return client.post(
        "/bookings/confirm-payment",
        json={
            "bookingId": booking_id,
            "orderId": order_id,
            "paymentId": payment_id,
            "signature": compute_signature(order_id, payment_id, PAYMENT_SECRET),
        },
    )


def test_health(client):
    assert client.get("/health").json() == {"redis": True}


# ── bookings ─────────────────────────────────────────────────────────────


def test_end_to_end_booking(client, ctx, db, service):
    resp = client.get(f"/bookings/availability/{service.id}", params={"date": SLOT_DATE})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert [s["time"] for s in body["data"]] == ["09:00", "10:00", "11:00"]
    assert body["data"][1]["datetime"].startswith("2026-10-19T10:00:00")

    resp = _book(client, service.id)
    assert resp.status_code == 201
    data = resp.json()["data"]
    booking = data["booking"]
    assert booking["status"] == "pending"
    assert booking["serviceId"] == service.id
    assert booking["requirements"] == ["resume review"]
    assert booking["scheduledDateTime"].startswith("2026-10-19T10:00:00")
    assert data["gatewayOrder"]["amount"] == 99900
    assert data["gatewayOrder"]["currency"] == "INR"

    resp = _confirm(client, booking["id"], data["gatewayOrder"]["id"])
    assert resp.status_code == 200
    confirmed = resp.json()["data"]
    assert confirmed["status"] == "confirmed"
    assert confirmed["paymentStatus"] == "paid"
    assert confirmed["meetingLink"] == ctx.settings.meeting_link_base

    resp = _confirm(client, booking["id"], data["gatewayOrder"]["id"])
    assert resp.status_code == 200

    db.expire_all()
    assert db.get(Services, service.id).total_bookings == 1
    assert [e["type"] for e in emitted_events(ctx.redis)] == ["booking_created", "booking_confirmed"]

    slots = client.get(f"/bookings/availability/{service.id}", params={"date": SLOT_DATE}).json()["data"]
    assert [s["time"] for s in slots] == ["09:00", "11:00"]


def test_booking_same_slot_twice_is_400(client, service):
    assert _book(client, service.id).status_code == 201

    resp = _book(client, service.id)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "This time slot is no longer available"}


def test_booking_unknown_service_is_404(client):
    resp = _book(client, 9999)
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_booking_validation_errors_are_400(client, service):
    resp = client.post("/bookings", json={"serviceId": service.id, "scheduledDateTime": "2026-10-19T10:00:00Z"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False

    resp = _book(client, service.id, when="2026-10-19T10:00:00")  # no offset
    assert resp.status_code == 400


def test_availability_bad_date_is_400(client, service):
    resp = client.get(f"/bookings/availability/{service.id}", params={"date": "19/10/2026"})
    assert resp.status_code == 400


def test_confirm_with_bad_signature_is_400(client, service):
    data = _book(client, service.id).json()["data"]

    resp = client.post(
        "/bookings/confirm-payment",
        json={
            "bookingId": data["booking"]["id"],
            "orderId": data["gatewayOrder"]["id"],
            "paymentId": "pay_1",
            "signature": "not-a-signature",
        },
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid payment signature"


def test_gateway_outage_is_502(client, ctx, service):
    ctx.gateway.fail = True

    resp = _book(client, service.id)
    assert resp.status_code == 502
    assert resp.json()["success"] is False


def test_my_bookings_requires_auth(client):
    assert client.get("/bookings/my-bookings").status_code == 401

    resp = client.get("/bookings/my-bookings", headers={"Authorization": "Bearer user_id=1&hash=bad"})
    assert resp.status_code == 401


def test_my_bookings_and_cancel(client, service):
    headers = auth_header("user_1", "asha@example.com")
    booking_id = _book(client, service.id, headers=headers).json()["data"]["booking"]["id"]
    _book(client, service.id, when="2026-10-19T11:00:00Z")  # same email, anonymous

    resp = client.get("/bookings/my-bookings", headers=headers)
    assert resp.status_code == 200
    assert len(resp.json()["data"]) == 2

    resp = client.put(
        f"/bookings/{booking_id}/cancel",
        json={"reason": "Schedule conflict"},
        headers=auth_header("user_2", "someone@example.com"),
    )
    assert resp.status_code == 403

    resp = client.put(f"/bookings/{booking_id}/cancel", json={"reason": "Schedule conflict"}, headers=headers)
    assert resp.status_code == 200
    cancelled = resp.json()["data"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelReason"] == "Schedule conflict"


def test_cancel_too_late_is_400(client, clock, service):
    headers = auth_header("user_1", "asha@example.com")
    booking_id = _book(client, service.id, headers=headers).json()["data"]["booking"]["id"]
    clock.advance(days=6, hours=3)  # Sunday 11:00, 23h before the session

    resp = client.put(f"/bookings/{booking_id}/cancel", json={}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot cancel booking less than 24 hours in advance"


def test_cancel_without_body(client, service):
    headers = auth_header("user_1", "asha@example.com")
    booking_id = _book(client, service.id, headers=headers).json()["data"]["booking"]["id"]

    resp = client.put(f"/bookings/{booking_id}/cancel", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"
    assert resp.json()["data"]["cancelReason"] is None


def test_book_off_grid_time_is_400(client, service):
    resp = _book(client, service.id, when="2026-10-18T03:17:00Z")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Requested time is not an available slot"


def test_expired_auth_token_is_401(client):
    token = sign_auth_data("test_auth_secret", "user_1", "asha@example.com", auth_date=1)
    resp = client.get("/bookings/my-bookings", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


# ── payments ─────────────────────────────────────────────────────────────


def test_purchase_and_download(client, resource):
    resp = client.post("/payments/create-order", json={"resourceId": resource.id, "customerInfo": CUSTOMER})
    assert resp.status_code == 200
    order = resp.json()["data"]
    assert order["amount"] == 49900
    assert order["resource"] == {"id": resource.id, "title": resource.title, "price": 499.0}

    resp = client.post(
        "/payments/verify",
        json={
            "orderId": order["orderId"],
            "paymentId": "pay_9",
            "signature": compute_signature(order["orderId"], "pay_9", PAYMENT_SECRET),
            "resourceId": resource.id,
            "customerInfo": CUSTOMER,
        },
    )
    assert resp.status_code == 200
    verified = resp.json()["data"]
    token = verified["downloadToken"]
    assert verified["downloadUrl"] == f"http://localhost:3000/download/{token}"

    resp = client.get(f"/payments/download/{token}", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == resource.file_url

    resp = client.get(f"/payments/download/{token}", follow_redirects=False)
    assert resp.status_code == 404
    assert resp.json()["success"] is False

    resp = client.get("/payments/purchases", headers=auth_header("user_1", "asha@example.com"))
    assert resp.status_code == 200
    purchases = resp.json()["data"]
    assert len(purchases) == 1
    assert purchases[0]["downloadCount"] == 1
    assert purchases[0]["paymentId"] == "pay_9"


def test_purchases_requires_auth(client):
    assert client.get("/payments/purchases").status_code == 401


def test_create_order_unknown_resource_is_404(client):
    resp = client.post("/payments/create-order", json={"resourceId": 9999, "customerInfo": CUSTOMER})
    assert resp.status_code == 404
