"""Hand-written collaborators for driving the conversation engine in tests."""
from __future__ import annotations

import asyncio
import copy
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set
from zoneinfo import ZoneInfo

from orderbot.config import Settings
from orderbot.errors import DuplicateOrderCode, StoreError, TransportError
from orderbot.ordering.brain import AdminDecision, ConversationEngine
from orderbot.ordering.menu_store import CatalogService
from orderbot.ordering.states import VERIFICATION_PENDING
from orderbot.ordering.stores import (
    HistoryRecord,
    HistoryStore,
    OrderRecord,
    OrderStore,
    VerificationLog,
    VerificationRecord,
)
from orderbot.transport import ChatTransport, InboundMessage, Media

CUSTOMER = "573001112233"
ADMIN = "573009990000"

MENU_DOC: Dict[str, Any] = {
    "main": [
        {"name": "Churrasco", "price": "$ 32.000", "color": "blue"},
        {"name": "Pechuga", "price": "$ 24.000", "color": "blue"},
        {"name": "Costilla", "price": "$ 30.000", "color": "red"},
        {"name": "Sancocho", "price": "$ 22.000", "color": "green"},
        {"name": "Arepa rellena", "price": 12000},
    ],
    "snacks": [{"name": "Chorizo", "price": "$ 6.000"}],
    "drinks": [
        {"name": "Limonada", "price": "$ 5.000"},
        {"name": "Gaseosa", "price": "$ 4.000"},
    ],
}

# a Monday, inside the 11:00-16:00 fast delivery window
WEEKDAY_NOON = datetime(2024, 5, 6, 12, 30, tzinfo=ZoneInfo("America/Bogota"))
SUNDAY_EVENING = datetime(2024, 5, 5, 19, 0, tzinfo=ZoneInfo("America/Bogota"))


class FakeTransport(ChatTransport):
    def __init__(self) -> None:
        self.sent: List[tuple] = []
        self.media: Optional[Media] = Media(data=b"\x89PNG", mimetype="image/png", filename="proof.png")
        self.fail_for: Set[str] = set()

    async def send_message(self, identity, content, options=None):
        if identity in self.fail_for:
            raise TransportError(f"send to {identity} failed")
        self.sent.append((identity, content, dict(options or {})))

    async def download_media(self, message):
        return self.media

    def texts(self, identity: str = CUSTOMER) -> List[str]:
        return [c for i, c, _ in self.sent if i == identity and isinstance(c, str)]

    def media_to(self, identity: str) -> List[tuple]:
        return [(c, o) for i, c, o in self.sent if i == identity and isinstance(c, Media)]


class InMemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self.orders: Dict[str, OrderRecord] = {}
        self.create_calls = 0
        self.find_calls = 0

    async def create_order(self, order):
        self.create_calls += 1
        if order.code in self.orders:
            raise DuplicateOrderCode(order.code)
        self.orders[order.code] = copy.deepcopy(order)

    async def find_by_code(self, code):
        self.find_calls += 1
        return self.orders.get(code.strip().upper())

    async def update_status(self, code, status):
        o = self.orders.get(code.strip().upper())
        if o is None:
            return False
        o.status = status
        return True

    async def list_codes(self):
        return set(self.orders)

    async def list_for_date(self, day: date):
        return [o for o in self.orders.values() if o.created_date == day]

    async def mark_invoiced(self, code):
        o = self.orders.get(code.strip().upper())
        if o is not None:
            o.invoiced = True


class FailingOrderStore(InMemoryOrderStore):
    async def create_order(self, order):
        self.create_calls += 1
        raise StoreError("orders table unavailable")


class InMemoryHistoryStore(HistoryStore):
    def __init__(self, seed: Optional[Dict[str, str]] = None) -> None:
        self.rows: Dict[str, HistoryRecord] = {
            k: HistoryRecord(identity=k, display_name=v, visit_count=1) for k, v in (seed or {}).items()
        }

    async def find(self, identity):
        return self.rows.get(identity)

    async def upsert(self, identity, name):
        row = self.rows.get(identity)
        if row is None:
            self.rows[identity] = HistoryRecord(identity=identity, display_name=name, visit_count=1)
        else:
            row.visit_count += 1
            row.display_name = name or row.display_name


class InMemoryVerificationLog(VerificationLog):
    def __init__(self) -> None:
        self.rows: Dict[str, VerificationRecord] = {}

    async def create(self, record):
        vid = uuid.uuid4().hex[:8]
        rec = copy.deepcopy(record)
        rec.id = vid
        rec.status = VERIFICATION_PENDING
        self.rows[vid] = rec
        return vid

    async def update_status(self, verification_id, status):
        if verification_id in self.rows:
            self.rows[verification_id].status = status

    async def is_pending(self, verification_id):
        rec = self.rows.get(verification_id)
        return rec is not None and rec.status == VERIFICATION_PENDING

    async def get(self, verification_id):
        return self.rows.get(verification_id)

    async def get_last_pending(self):
        pending = [r for r in self.rows.values() if r.status == VERIFICATION_PENDING]
        return max(pending, key=lambda r: r.timestamp) if pending else None


def make_settings(**overrides) -> Settings:
    base: Dict[str, Any] = dict(
        admin_identity=ADMIN,
        pay_number="3005550000",
        location_url="",
        sticker_path="/nonexistent/sticker.webp",
        welcome_image_path="/nonexistent/logo.jpg",
    )
    base.update(overrides)
    return Settings(**base)


class Harness:
    """One engine wired to fakes; ``send`` runs a single turn to completion."""

    def __init__(
        self, menu_doc=None, settings=None, clock=None, orders=None, history=None, verifications=None, transport=None
    ) -> None:
        self.menu_doc = copy.deepcopy(menu_doc or MENU_DOC)
        self.transport = transport or FakeTransport()
        self.orders = orders or InMemoryOrderStore()
        self.history = history or InMemoryHistoryStore()
        self.verifications = verifications or InMemoryVerificationLog()
        self.now = clock or WEEKDAY_NOON
        # ttl 0: every lookup re-reads menu_doc, so tests can edit it mid-conversation
        self.catalog = CatalogService(lambda: self.menu_doc, ttl_seconds=0)
        self.engine = ConversationEngine(
            transport=self.transport,
            catalog=self.catalog,
            orders=self.orders,
            history=self.history,
            verifications=self.verifications,
            settings=settings or make_settings(),
            clock=lambda: self.now,
        )

    def send(self, text: str = "", sender: str = CUSTOMER, **kw) -> None:
        asyncio.run(self.engine.handle_message(InboundMessage(sender=sender, body=text, **kw)))

    def send_image(self, sender: str = CUSTOMER) -> None:
        self.send("", sender=sender, has_media=True, media_id="m1", media_mimetype="image/jpeg")

    def decide(self, approved: bool, verification_id: Optional[str] = None) -> bool:
        vid = verification_id or self.session().verification_id
        return asyncio.run(self.engine.handle_admin_decision(AdminDecision(vid, approved)))

    def session(self, sender: str = CUSTOMER):
        return self.engine.sessions.get_or_create(sender)

    def last(self, sender: str = CUSTOMER) -> str:
        return self.transport.texts(sender)[-1]

    def say_all(self, *messages: str, sender: str = CUSTOMER) -> None:
        for m in messages:
            self.send(m, sender=sender)
