import json
from datetime import datetime, timezone

import pytest

from conftest import NOW, PAYMENT_SECRET, AsyncFakeRedis
from portfolio.notifier import EVENT_HANDLERS, process_event
from portfolio.notifier import email_sender, handlers
from portfolio.notifier.consumer import MAX_RETRIES, move_one_retry, process_event_safe
from portfolio.services.booking_flow import BookingFlow, CustomerInfo
from portfolio.services.events import NOTIFY_DEAD_QUEUE, NOTIFY_QUEUE, NOTIFY_RETRY_QUEUE
from portfolio.services.purchases import PurchaseFlow
from portfolio.services.signature import compute_signature


class SentMail:
    def __init__(self):
        self.messages = []

    def __call__(self, settings, to_email, subject, html):
        self.messages.append((to_email, subject, html))


@pytest.fixture
def sent(monkeypatch):
    recorder = SentMail()
    monkeypatch.setattr(handlers, "send_email", recorder)
    return recorder


async def _fail(ctx, data):
    raise RuntimeError("smtp down")


# ── dispatch / retry ─────────────────────────────────────────────────────


async def test_failed_event_goes_to_retry_queue(ctx, monkeypatch):
    monkeypatch.setitem(EVENT_HANDLERS, "flaky", _fail)
    r = AsyncFakeRedis()

    await process_event_safe(ctx, r, json.dumps({"type": "flaky", "booking_id": 1}))

    retried = json.loads(r.lists[NOTIFY_RETRY_QUEUE][0])
    assert retried["_attempt"] == 2
    assert r.lists[NOTIFY_DEAD_QUEUE] == []


async def test_event_is_dead_lettered_after_max_retries(ctx, monkeypatch):
    monkeypatch.setitem(EVENT_HANDLERS, "flaky", _fail)
    r = AsyncFakeRedis()

    await process_event_safe(ctx, r, json.dumps({"type": "flaky", "_attempt": MAX_RETRIES}))

    assert r.lists[NOTIFY_RETRY_QUEUE] == []
    assert json.loads(r.lists[NOTIFY_DEAD_QUEUE][0])["type"] == "flaky"


async def test_invalid_json_is_dead_lettered(ctx):
    r = AsyncFakeRedis()
    await process_event_safe(ctx, r, "{not json")
    assert r.lists[NOTIFY_DEAD_QUEUE] == ["{not json"]


async def test_unknown_event_type_is_ignored(ctx):
    r = AsyncFakeRedis()
    await process_event_safe(ctx, r, json.dumps({"type": "nobody_listens"}))
    assert r.lists[NOTIFY_RETRY_QUEUE] == []
    assert r.lists[NOTIFY_DEAD_QUEUE] == []


async def test_move_one_retry():
    r = AsyncFakeRedis()
    assert await move_one_retry(r) is False

    await r.rpush(NOTIFY_RETRY_QUEUE, "event")
    assert await move_one_retry(r) is True
    assert r.lists[NOTIFY_QUEUE] == ["event"]


# ── handlers ─────────────────────────────────────────────────────────────


async def test_booking_confirmed_sends_email(ctx, db, service, sent):
    flow = BookingFlow(db, ctx.gateway, ctx.redis, PAYMENT_SECRET, "https://meet.example.com/room")
    booking = flow.create(
        service.id,
        datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc),
        CustomerInfo(name="Asha <Rao>", email="asha@example.com"),
        NOW,
    ).booking
    flow.confirm_payment(
        booking.id,
        booking.payment_order_id,
        "pay_1",
        compute_signature(booking.payment_order_id, "pay_1", PAYMENT_SECRET),
        NOW,
    )

    await process_event(ctx, {"type": "booking_confirmed", "booking_id": booking.id})

    to_email, subject, html = sent.messages[0]
    assert to_email == "asha@example.com"
    assert subject == "Booking Confirmed - Strategy Call"
    assert "Asha &lt;Rao&gt;" in html
    assert "https://meet.example.com/room" in html
    assert "30 minutes" in html
    assert "INR 999" in html


async def test_purchase_completed_sends_download_link(ctx, db, resource, sent):
    flow = PurchaseFlow(db, ctx.gateway, ctx.redis, PAYMENT_SECRET, "http://localhost:3000")
    customer = CustomerInfo(name="Asha", email="asha@example.com")
    order = flow.create_order(resource.id, customer).order
    issued = flow.verify_payment(
        order.id,
        "pay_1",
        compute_signature(order.id, "pay_1", PAYMENT_SECRET),
        resource.id,
        customer,
        NOW,
    )

    await process_event(ctx, {
        "type": "purchase_completed",
        "purchase_id": issued.purchase.id,
        "download_url": issued.download_url,
    })

    to_email, subject, html = sent.messages[0]
    assert to_email == "asha@example.com"
    assert subject == "Purchase Confirmation - Interview Prep Guide"
    assert issued.download_url in html
    assert "up to 5 times" in html


async def test_missing_booking_sends_nothing(ctx, sent):
    await process_event(ctx, {"type": "booking_confirmed", "booking_id": 404})
    assert sent.messages == []


# ── smtp ─────────────────────────────────────────────────────────────────


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def sendmail(self, from_addr, to_addrs, msg):
        self.calls.append(("sendmail", from_addr, tuple(to_addrs)))

    def quit(self):
        self.calls.append("quit")


def test_send_email_uses_starttls_and_login(make_ctx, monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_sender.smtplib, "SMTP", FakeSMTP)
    settings = make_ctx(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="mailer",
        smtp_password="pw",
        email_from="no-reply@example.com",
    ).settings

    email_sender.send_email(settings, "asha@example.com", "Hello", "<p>Hi</p>")

    server = FakeSMTP.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.calls == [
        "starttls",
        ("login", "mailer"),
        ("sendmail", "no-reply@example.com", ("asha@example.com",)),
        "quit",
    ]


def test_build_message_is_html(ctx):
    msg = email_sender.build_message(ctx.settings, "asha@example.com", "Subject", "<b>x</b>")
    assert msg["To"] == "asha@example.com"
    assert msg.get_payload()[0].get_content_type() == "text/html"
