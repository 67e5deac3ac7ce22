import asyncio
import hashlib
import hmac
import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from fakes import ADMIN, CUSTOMER, FakeTransport, InMemoryVerificationLog
from orderbot.config import settings
from orderbot.main import admin_decision_from_text, app
from orderbot.ordering import texts
from orderbot.ordering.stores import OrderRecord, VerificationRecord


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def transport():
    fake = FakeTransport()
    original = app.state.engine.transport
    app.state.engine.transport = fake
    yield fake
    app.state.engine.transport = original


@pytest.fixture(scope="module")
def token(client):
    r = client.post("/auth/login", json={"email": "kitchen@arepazo.co", "password": "fogon-2024"})
    assert r.status_code == 200
    return r.json()["token"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _text_payload(sender, body):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {"value": {"messages": [{"from": sender, "id": "wamid.1", "type": "text", "text": {"body": body}}]}}
                ]
            }
        ],
    }


def _sign(raw: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def _post_webhook(client, payload, signature=None):
    raw = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    headers["X-Hub-Signature-256"] = signature if signature is not None else _sign(raw, settings.app_secret)
    return client.post("/webhook", content=raw, headers=headers)


def _run(client, coro_fn, *args):
    # run a store coroutine on the app's event loop
    return client.portal.call(coro_fn, *args)


def test_health(client):
    assert client.get("/").json()["ok"] is True


# -------------------
# Auth
# -------------------
def test_login_rejects_bad_password(client):
    r = client.post("/auth/login", json={"email": "kitchen@arepazo.co", "password": "nope"})
    assert r.status_code == 401


def test_kitchen_requires_token(client):
    assert client.get("/kitchen/orders").status_code == 401
    assert client.get("/kitchen/orders", headers=_auth("garbage")).status_code == 401


# -------------------
# Webhook
# -------------------
def test_webhook_verification(client):
    ok = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": settings.verify_token, "hub.challenge": "42"},
    )
    assert ok.status_code == 200
    assert ok.text == "42"

    bad = client.get("/webhook", params={"hub.mode": "subscribe", "hub.verify_token": "x", "hub.challenge": "42"})
    assert bad.status_code == 403


def test_webhook_routes_customer_messages(client, transport):
    r = _post_webhook(client, _text_payload("573005550001", "hola"))
    assert r.status_code == 200
    assert r.json()["handled"] == 1
    assert transport.texts("573005550001")[-1] == texts.WELCOME.format(restaurant=settings.restaurant_name)

    _post_webhook(client, _text_payload("573005550001", "1"))
    assert "Here is our menu" in transport.texts("573005550001")[-1]


def test_webhook_ignores_status_callbacks(client, transport):
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}
    assert _post_webhook(client, payload).json()["handled"] == 0
    assert transport.sent == []


def test_webhook_rejects_missing_or_bad_signature(client, transport):
    payload = _text_payload("573005550003", "hola")
    assert client.post("/webhook", json=payload).status_code == 401
    assert _post_webhook(client, payload, signature="sha256=" + "0" * 64).status_code == 401

    raw = json.dumps(payload).encode()
    forged = _sign(raw, "someone-elses-secret")
    assert _post_webhook(client, payload, signature=forged).status_code == 401
    assert transport.sent == []


def test_webhook_rejects_non_json_body(client):
    raw = b"not json"
    r = client.post("/webhook", content=raw, headers={"X-Hub-Signature-256": _sign(raw, settings.app_secret)})
    assert r.status_code == 400


def test_admin_reply_without_app_secret_is_not_a_decision(client, transport, monkeypatch):
    monkeypatch.setattr(settings, "admin_identity", ADMIN)
    monkeypatch.setattr(settings, "app_secret", "")
    log = app.state.engine.verifications
    vid = _run(
        client,
        log.create,
        VerificationRecord(
            customer_identity="573005550004",
            customer_name="Luz",
            order_summary="1x Pechuga: $ 24.000",
            amount=Decimal("24000"),
            payment_method="Nequi",
        ),
    )

    r = client.post("/webhook", json=_text_payload(ADMIN, f"1 {vid}"))
    assert r.status_code == 200
    assert _run(client, log.is_pending, vid)
    # the admin's reply is handled as an ordinary chat turn instead
    assert transport.texts(ADMIN)[-1] == texts.WELCOME.format(restaurant=settings.restaurant_name)
    client.post("/webhook", json=_text_payload(ADMIN, "2"))
    _run(client, log.update_status, vid, "denied")


def test_admin_reply_becomes_decision(client, transport, monkeypatch):
    monkeypatch.setattr(settings, "admin_identity", ADMIN)
    log = app.state.engine.verifications
    vid = _run(
        client,
        log.create,
        VerificationRecord(
            customer_identity=CUSTOMER,
            customer_name="Jane",
            order_summary="1x Pechuga: $ 24.000",
            amount=Decimal("24000"),
            payment_method="Nequi",
        ),
    )

    _post_webhook(client, _text_payload(ADMIN, f"2 {vid}"))

    assert _run(client, log.get, vid).status == "denied"
    # nobody was waiting on it, so the admin is told instead of the customer
    assert "no longer waiting" in transport.texts(ADMIN)[-1]
    assert transport.texts(CUSTOMER) == []


def test_admin_free_text_is_a_normal_conversation(client, transport, monkeypatch):
    monkeypatch.setattr(settings, "admin_identity", ADMIN)
    _post_webhook(client, _text_payload(ADMIN, "hola"))
    assert transport.texts(ADMIN)[-1] == texts.WELCOME.format(restaurant=settings.restaurant_name)
    _post_webhook(client, _text_payload(ADMIN, "cancel"))


def test_typed_decision_endpoint(client, token, transport):
    log = app.state.engine.verifications
    vid = _run(
        client,
        log.create,
        VerificationRecord(
            customer_identity="573005550002",
            customer_name="Ana",
            order_summary="1x Gaseosa: $ 4.000",
            amount=Decimal("4000"),
            payment_method="Nequi",
        ),
    )

    r = client.post(f"/admin/verifications/{vid}/decision", json={"approved": True}, headers=_auth(token))
    assert r.status_code == 200
    assert r.json() == {"ok": True, "applied": False}
    assert _run(client, log.get, vid).status == "confirmed"

    missing = client.post("/admin/verifications/00000000/decision", json={"approved": True}, headers=_auth(token))
    assert missing.status_code == 404

    assert client.post(f"/admin/verifications/{vid}/decision", json={"approved": True}).status_code == 401


# -------------------
# Kitchen
# -------------------
def test_kitchen_orders_and_invoice(client, token):
    orders = app.state.orders
    now = datetime.now(ZoneInfo(settings.timezone))
    _run(
        client,
        orders.create_order,
        OrderRecord(
            code="KTC-101",
            created_date=now.date(),
            created_time=now.strftime("%H:%M"),
            customer_identity=CUSTOMER,
            customer_name="Jane",
            address="Main St 1",
            item_summary="2x Churrasco: $ 64.000",
            payment_method="Cash",
            total=Decimal("64000"),
            cash_tendered=Decimal("70000"),
            change=Decimal("6000"),
        ),
    )

    listed = client.get("/kitchen/orders", headers=_auth(token)).json()
    assert "KTC-101" in [o["code"] for o in listed]

    first = client.post("/kitchen/orders/ktc-101/status", json={"status": "on-the-way"}, headers=_auth(token))
    assert first.status_code == 200
    assert first.json()["invoice"] == "invoice_KTC-101.txt"
    invoice = Path(settings.invoice_dir) / "invoice_KTC-101.txt"
    body = invoice.read_text(encoding="utf-8")
    assert "Invoice for order KTC-101" in body
    assert "Change: $ 6.000" in body

    second = client.post("/kitchen/orders/KTC-101/status", json={"status": "delivered"}, headers=_auth(token))
    assert second.json()["invoice"] is None
    assert _run(client, orders.find_by_code, "KTC-101").status == "delivered"


def test_kitchen_unknown_order(client, token):
    r = client.post("/kitchen/orders/NOP-404/status", json={"status": "delivered"}, headers=_auth(token))
    assert r.status_code == 404


def test_kitchen_blank_status(client, token):
    r = client.post("/kitchen/orders/KTC-101/status", json={"status": "  "}, headers=_auth(token))
    assert r.status_code == 400


def test_bare_admin_reply_targets_last_pending():
    log = InMemoryVerificationLog()

    async def _go():
        assert await admin_decision_from_text("1", log) is None
        older = await log.create(
            VerificationRecord("a", "A", "x", Decimal("1"), "Nequi", timestamp=datetime(2024, 5, 6, 10, 0))
        )
        newer = await log.create(
            VerificationRecord("b", "B", "y", Decimal("1"), "Nequi", timestamp=datetime(2024, 5, 6, 11, 0))
        )
        bare = await admin_decision_from_text("2", log)
        explicit = await admin_decision_from_text(f"1 {older}", log)
        chatter = await admin_decision_from_text("thanks", log)
        return newer, older, bare, explicit, chatter

    newer, older, bare, explicit, chatter = asyncio.run(_go())
    assert (bare.verification_id, bare.approved) == (newer, False)
    assert (explicit.verification_id, explicit.approved) == (older, True)
    assert chatter is None
