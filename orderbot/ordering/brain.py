# orderbot/ordering/brain.py
from __future__ import annotations

import logging
import re
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from ..config import Settings, settings as default_settings
from ..errors import CatalogError, DuplicateOrderCode, OrderCodeError, StoreError, TransportError
from ..log import log_event, new_trace_id
from ..transport import ChatTransport, InboundMessage, Media
from . import texts
from .cart import CartLine, build_summary, format_price
from .codes import generate_order_code, is_valid_code, normalize_code
from .menu import Menu, is_sunday, parse_positive_int, pick, render_drinks, render_menu
from .menu_store import CatalogService
from .sessions import Session, SessionStore
from .states import (
    ORDER_STATUS_IN_PREPARATION,
    VERIFICATION_CONFIRMED,
    VERIFICATION_DENIED,
    State,
)
from .stores import HistoryStore, OrderRecord, OrderStore, VerificationLog, VerificationRecord
from .timers import InactivitySupervisor

RESTART_KEYWORDS = {"cancel", "menu"}
MAIN_MENU_OPTIONS = {"1", "2", "3"}
WALLET_NUMBER_RE = re.compile(r"^\d{10}$")
ADMIN_REPLY_RE = re.compile(r"^\s*([12])(?:\s+([0-9a-fA-F]{8}))?\s*$")
CODE_INSERT_ATTEMPTS = 3

_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

Handler = Callable[[Session, str, InboundMessage], Awaitable[None]]


@dataclass(frozen=True)
class AdminDecision:
    verification_id: str
    approved: bool


def parse_admin_reply(text: str) -> Optional[Tuple[bool, Optional[str]]]:
    """
    Admin chat reply -> (approved, verification_id or None for "last pending").
    Accepts "1" / "2", optionally followed by the verification id.
    """
    m = ADMIN_REPLY_RE.match(text or "")
    if not m:
        return None
    vid = m.group(2).lower() if m.group(2) else None
    return m.group(1) == "1", vid


def parse_amount(text: str) -> Optional[Decimal]:
    s = (text or "").strip().replace("$", "").replace(" ", "").replace(".", "").replace(",", "")
    if not (s.isascii() and s.isdigit()):
        return None
    return Decimal(s)


def delivery_minutes(now: datetime) -> int:
    return 20 if 11 <= now.hour < 16 else 40


class ConversationEngine:
    """
    Dialogue state machine for one restaurant.

    Entry points: ``handle_message`` (customer chat), ``handle_admin_decision``
    (payment verification outcome) and the inactivity timer callbacks. All of
    them mutate a session only under that identity's lock.
    """

    def __init__(
        self,
        *,
        transport: ChatTransport,
        catalog: CatalogService,
        orders: OrderStore,
        history: HistoryStore,
        verifications: VerificationLog,
        sessions: Optional[SessionStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.transport = transport
        self.catalog = catalog
        self.orders = orders
        self.history = history
        self.verifications = verifications
        self.sessions = sessions or SessionStore()
        self._tz = ZoneInfo(self.settings.timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self.supervisor = InactivitySupervisor(
            warning_after=self.settings.inactivity_warning_seconds,
            terminate_after=self.settings.inactivity_timeout_seconds,
            on_warning=self._on_inactivity_warning,
            on_terminate=self._on_inactivity_timeout,
        )
        self.sessions.add_reset_listener(self.supervisor.cancel_all)

        self._handlers: Dict[State, Handler] = {
            State.MAIN_MENU: self._main_menu,
            State.STATUS_QUERY: self._status_query,
            State.MENU: self._menu,
            State.QUANTITY_PENDING: self._quantity_pending,
            State.ADD_MORE: self._add_more,
            State.OFFER_DRINKS: self._offer_drinks,
            State.DRINKS: self._drinks,
            State.DRINK_QUANTITY: self._drink_quantity,
            State.ADD_DRINK: self._add_drink,
            State.SUMMARY: self._summary,
            State.INSTRUCTIONS: self._instructions,
            State.MODIFY: self._modify,
            State.MODIFY_ACTION: self._modify_action,
            State.MODIFY_QUANTITY: self._modify_quantity,
            State.NAME: self._name,
            State.ADDRESS: self._address,
            State.PAYMENT_METHOD: self._payment_method,
            State.CASH_AMOUNT: self._cash_amount,
            State.WALLET_NUMBER_ENTRY: self._wallet_number_entry,
            State.AWAITING_PROOF: self._awaiting_proof,
            State.PENDING_VERIFICATION: self._pending_verification,
            State.PAYMENT_DENIED: self._payment_denied,
        }
        unhandled = set(State) - set(self._handlers)
        if unhandled:
            raise RuntimeError(f"No handler for states: {sorted(s.value for s in unhandled)}")

    # -------------------
    # Entry points
    # -------------------
    async def handle_message(self, msg: InboundMessage) -> None:
        trace_id = new_trace_id()
        ctx = _trace_id.set(trace_id)
        identity = msg.sender
        body = (msg.body or "").strip()

        # any inbound message cancels the pending warning/terminate timers
        self.supervisor.cancel(identity)
        try:
            async with self.sessions.locked(identity) as s:
                log_event(
                    trace_id,
                    "message_in",
                    {"identity": identity, "state": s.state, "body_preview": body[:80], "has_media": msg.has_media},
                )
                try:
                    await self._dispatch(s, body, msg)
                except Exception as e:
                    log_event(
                        trace_id,
                        "error",
                        {"identity": identity, "state": s.state, "error": e},
                        level=logging.ERROR,
                    )
                    await self._fail(s)
                if s.active:
                    self.supervisor.arm(identity)
        finally:
            _trace_id.reset(ctx)

    async def handle_admin_decision(self, decision: AdminDecision) -> bool:
        """Apply an admin payment decision; False when it no longer matches a waiting session."""
        trace_id = new_trace_id()
        ctx = _trace_id.set(trace_id)
        try:
            record = await self.verifications.get(decision.verification_id)
            if record is None or not await self.verifications.is_pending(decision.verification_id):
                log_event(trace_id, "admin_decision_ignored", {"verification_id": decision.verification_id})
                return False

            identity = record.customer_identity
            async with self.sessions.locked(identity) as s:
                # a racing decision on the same id may have settled it while we waited
                if not await self.verifications.is_pending(decision.verification_id):
                    log_event(trace_id, "admin_decision_ignored", {"verification_id": decision.verification_id})
                    return False
                self.supervisor.cancel(identity)
                status = VERIFICATION_CONFIRMED if decision.approved else VERIFICATION_DENIED
                log_event(
                    trace_id,
                    "admin_decision",
                    {"verification_id": decision.verification_id, "identity": identity, "status": status},
                )
                waiting = s.state == State.PENDING_VERIFICATION and s.verification_id == decision.verification_id
                try:
                    await self.verifications.update_status(decision.verification_id, status)
                    if not waiting:
                        await self._notify_admin(
                            f"Verification {decision.verification_id} was {status}, "
                            f"but the customer {identity} is no longer waiting for it."
                        )
                    elif decision.approved:
                        s.verification_id = None
                        await self._send(identity, texts.PAYMENT_CONFIRMED)
                        await self._confirm(s)
                    else:
                        s.verification_id = None
                        await self._payment_was_denied(s)
                except Exception as e:
                    log_event(trace_id, "error", {"identity": identity, "error": e}, level=logging.ERROR)
                    await self._fail(s)
                if s.active:
                    self.supervisor.arm(identity)
            return waiting
        finally:
            _trace_id.reset(ctx)

    async def _on_inactivity_warning(self, identity: str, token: int) -> None:
        async with self.sessions.locked(identity) as s:
            if not self.supervisor.is_current(identity, token) or not s.active:
                return
            log_event(None, "inactivity_warning", {"identity": identity, "state": s.state})
            await self._send(identity, texts.INACTIVITY_WARNING)

    async def _on_inactivity_timeout(self, identity: str, token: int) -> None:
        async with self.sessions.locked(identity) as s:
            if not self.supervisor.is_current(identity, token) or not s.active:
                return
            log_event(None, "inactivity_timeout", {"identity": identity, "state": s.state})
            try:
                await self._send(identity, texts.INACTIVITY_TIMEOUT)
            finally:
                self._end(s)

    # -------------------
    # Plumbing
    # -------------------
    async def _dispatch(self, s: Session, body: str, msg: InboundMessage) -> None:
        if not s.active:
            self._goto(s, State.MAIN_MENU)
            if body in MAIN_MENU_OPTIONS:
                await self._main_menu(s, body, msg)
            else:
                await self._send_welcome(s.identity)
            return

        if body.lower() in RESTART_KEYWORDS:
            self._end(s)
            self._goto(s, State.MAIN_MENU)
            await self._send_welcome(s.identity)
            return

        await self._handlers[s.state](s, body, msg)

    def _now(self) -> datetime:
        return self._clock()

    @property
    def _currency(self) -> str:
        return self.settings.currency_symbol

    def _price(self, amount: Decimal) -> str:
        return format_price(amount, self._currency)

    def _goto(self, s: Session, state: State) -> None:
        if s.state != state:
            log_event(
                _trace_id.get(),
                "state_transition",
                {"identity": s.identity, "from": s.state, "to": state},
                level=logging.DEBUG,
            )
        s.state = state

    def _end(self, s: Session) -> None:
        self.sessions.reset(s.identity)

    async def _send(self, identity: str, content, options: Optional[dict] = None) -> None:
        await self.transport.send_message(identity, content, options)

    async def _notify_admin(self, content, options: Optional[dict] = None) -> None:
        admin = self.settings.admin_identity
        if not admin:
            return
        try:
            await self._send(admin, content, options)
        except TransportError as e:
            log_event(_trace_id.get(), "admin_notify_failed", {"error": e}, level=logging.WARNING)

    async def _fail(self, s: Session) -> None:
        identity = s.identity
        self._end(s)
        try:
            await self._send(identity, texts.GENERIC_ERROR)
        except Exception as e:
            log_event(_trace_id.get(), "error_notice_failed", {"identity": identity, "error": e}, level=logging.ERROR)

    async def _send_welcome(self, identity: str) -> None:
        restaurant = self.settings.restaurant_name
        logo = Path(self.settings.welcome_image_path)
        if logo.is_file():
            try:
                await self._send(
                    identity,
                    Media.from_file(logo, "image/jpeg"),
                    {"caption": texts.WELCOME_CAPTION.format(restaurant=restaurant)},
                )
            except (OSError, TransportError) as e:
                log_event(_trace_id.get(), "welcome_image_failed", {"error": e}, level=logging.WARNING)
        await self._send(identity, texts.WELCOME.format(restaurant=restaurant))

    async def _show_menu(self, s: Session, menu: Optional[Menu] = None) -> None:
        if menu is None:
            menu = await self.catalog.get_menu()
        sunday = is_sunday(self._now())
        s.menu_listing = menu.listing(sunday)
        s.menu_text = render_menu(menu, sunday, self._currency)
        self._goto(s, State.MENU)
        await self._send(s.identity, s.menu_text)

    async def _show_summary(self, s: Session) -> None:
        if not s.cart:
            await self._send(s.identity, texts.CART_EMPTY)
            await self._show_menu(s)
            return

        lines, total = build_summary(s.cart, self._currency)
        msg = texts.SUMMARY.format(lines="\n".join(lines), total=self._price(total))
        if s.special_instructions:
            msg += texts.SUMMARY_INSTRUCTIONS.format(instructions=s.special_instructions)
        msg += texts.SUMMARY_OPTIONS
        self._goto(s, State.SUMMARY)
        await self._send(s.identity, msg)

    # -------------------
    # State handlers
    # -------------------
    async def _main_menu(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "1":
            hist = await self.history.find(s.identity)
            menu = await self.catalog.get_menu()
            s.cart = []
            if hist and hist.display_name:
                s.customer_name = hist.display_name
                s.known_customer = True
            await self._show_menu(s, menu)
        elif body == "2":
            identity = s.identity
            self._end(s)
            await self._send(identity, texts.LOCATION.format(location=self.settings.location_text))
            if self.settings.location_url:
                await self._send(identity, self.settings.location_url)
        elif body == "3":
            self._goto(s, State.STATUS_QUERY)
            await self._send(s.identity, texts.STATUS_PROMPT)
        else:
            await self._send(s.identity, texts.MAIN_MENU_INVALID)

    async def _status_query(self, s: Session, body: str, msg: InboundMessage) -> None:
        code = normalize_code(body)
        if not is_valid_code(code):
            await self._send(s.identity, texts.STATUS_BAD_FORMAT)
            return

        order = await self.orders.find_by_code(code)
        identity = s.identity
        self._end(s)
        if order is None:
            await self._send(identity, texts.STATUS_NOT_FOUND)
            return
        await self._send(
            identity,
            texts.STATUS_REPORT.format(
                code=order.code,
                status=order.status,
                date=order.created_date.strftime("%d/%m/%Y"),
                time=order.created_time,
                address=order.address,
                payment=order.payment_method,
                total=self._price(order.total),
                items=order.item_summary,
            ),
        )

    async def _menu(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "0":
            identity = s.identity
            self._end(s)
            await self._send(identity, texts.ORDER_CANCELLED)
            return

        menu = await self.catalog.get_menu()
        sunday = is_sunday(self._now())
        listing = menu.listing(sunday)
        if listing != s.menu_listing:
            # the index the customer typed refers to a listing that no longer exists
            await self._send(s.identity, texts.MENU_CHANGED)
            await self._show_menu(s, menu)
            return

        item = pick(listing, body)
        if item is None:
            await self._send(s.identity, texts.MENU_INVALID)
            return

        s.pending_selection = item
        self._goto(s, State.QUANTITY_PENDING)
        await self._send(s.identity, texts.QUANTITY_PROMPT.format(item=item.name))

    async def _quantity_pending(self, s: Session, body: str, msg: InboundMessage) -> None:
        qty = parse_positive_int(body)
        if qty is None:
            await self._send(s.identity, texts.QUANTITY_INVALID)
            return
        item = s.pending_selection
        if item is None:
            await self._show_summary(s)
            return

        s.cart.append(CartLine(name=item.name, unit_price=item.price, quantity=qty, category=item.category))
        s.pending_selection = None
        self._goto(s, State.ADD_MORE)
        await self._send(s.identity, texts.ADD_MORE)

    async def _add_more(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "1":
            await self._show_menu(s)
        elif body == "2":
            self._goto(s, State.OFFER_DRINKS)
            await self._send(s.identity, texts.OFFER_DRINKS)
        else:
            await self._send(s.identity, texts.YES_NO_INVALID)

    async def _offer_drinks(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "1":
            try:
                drinks = (await self.catalog.get_menu()).drink_items
            except CatalogError:
                drinks = []
            if not drinks:
                await self._send(s.identity, texts.DRINKS_UNAVAILABLE)
                await self._show_summary(s)
                return
            s.drinks = drinks
            self._goto(s, State.DRINKS)
            await self._send(s.identity, render_drinks(drinks, self._currency))
        elif body == "2":
            await self._show_summary(s)
        else:
            await self._send(s.identity, texts.YES_NO_INVALID)

    async def _drinks(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "0":
            await self._show_summary(s)
            return
        item = pick(s.drinks, body)
        if item is None:
            await self._send(s.identity, texts.DRINK_INVALID)
            return
        s.pending_selection = item
        self._goto(s, State.DRINK_QUANTITY)
        await self._send(s.identity, texts.DRINK_QUANTITY_PROMPT.format(item=item.name))

    async def _drink_quantity(self, s: Session, body: str, msg: InboundMessage) -> None:
        qty = parse_positive_int(body)
        if qty is None:
            await self._send(s.identity, texts.QUANTITY_INVALID)
            return
        item = s.pending_selection
        if item is None:
            await self._show_summary(s)
            return

        s.cart.append(CartLine(name=item.name, unit_price=item.price, quantity=qty, category=item.category))
        s.pending_selection = None
        self._goto(s, State.ADD_DRINK)
        await self._send(s.identity, texts.ADD_DRINK)

    async def _add_drink(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "1":
            self._goto(s, State.DRINKS)
            await self._send(s.identity, render_drinks(s.drinks, self._currency, more=True))
        elif body == "2":
            await self._show_summary(s)
        else:
            await self._send(s.identity, texts.YES_NO_INVALID)

    async def _summary(self, s: Session, body: str, msg: InboundMessage) -> None:
        if not s.cart:
            await self._show_summary(s)
            return

        if body == "1":
            lines = "\n".join(f"*{i}.* {line.quantity}x {line.name}" for i, line in enumerate(s.cart, start=1))
            self._goto(s, State.MODIFY)
            await self._send(s.identity, texts.MODIFY_PROMPT.format(lines=lines))
        elif body == "2":
            self._goto(s, State.INSTRUCTIONS)
            await self._send(s.identity, texts.INSTRUCTIONS_PROMPT)
        elif body == "3":
            await self._show_menu(s)
        elif body == "4":
            if s.known_customer and s.customer_name:
                self._goto(s, State.ADDRESS)
                await self._send(s.identity, texts.ADDRESS_PROMPT.format(name=s.customer_name))
            else:
                self._goto(s, State.NAME)
                await self._send(s.identity, texts.NAME_PROMPT)
        else:
            await self._send(s.identity, texts.SUMMARY_INVALID)

    async def _instructions(self, s: Session, body: str, msg: InboundMessage) -> None:
        s.special_instructions = body
        await self._show_summary(s)

    async def _modify(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "0":
            await self._show_summary(s)
            return
        n = parse_positive_int(body)
        if n is None or n > len(s.cart):
            await self._send(s.identity, texts.MODIFY_INVALID)
            return
        s.modify_index = n - 1
        line = s.cart[s.modify_index]
        self._goto(s, State.MODIFY_ACTION)
        await self._send(s.identity, texts.MODIFY_ACTION.format(qty=line.quantity, item=line.name))

    def _modify_target(self, s: Session) -> Optional[CartLine]:
        idx = s.modify_index
        if idx is None or not (0 <= idx < len(s.cart)):
            s.modify_index = None
            return None
        return s.cart[idx]

    async def _modify_action(self, s: Session, body: str, msg: InboundMessage) -> None:
        line = self._modify_target(s)
        if line is None or body == "0":
            await self._show_summary(s)
            return
        if body == "1":
            self._goto(s, State.MODIFY_QUANTITY)
            await self._send(s.identity, texts.MODIFY_QUANTITY_PROMPT.format(item=line.name))
        elif body == "2":
            del s.cart[s.modify_index]
            s.modify_index = None
            await self._show_summary(s)
        else:
            await self._send(s.identity, texts.MODIFY_INVALID)

    async def _modify_quantity(self, s: Session, body: str, msg: InboundMessage) -> None:
        line = self._modify_target(s)
        if line is None:
            await self._show_summary(s)
            return
        qty = parse_positive_int(body)
        if qty is None:
            await self._send(s.identity, texts.QUANTITY_INVALID)
            return
        line.quantity = qty
        s.modify_index = None
        await self._show_summary(s)

    async def _name(self, s: Session, body: str, msg: InboundMessage) -> None:
        if not body:
            await self._send(s.identity, texts.NAME_PROMPT)
            return
        s.customer_name = body
        self._goto(s, State.ADDRESS)
        await self._send(s.identity, texts.ADDRESS_PROMPT.format(name=s.customer_name))

    async def _address(self, s: Session, body: str, msg: InboundMessage) -> None:
        if not body:
            await self._send(s.identity, texts.ADDRESS_PROMPT.format(name=s.customer_name or ""))
            return
        s.address = body
        self._goto(s, State.PAYMENT_METHOD)
        await self._send(s.identity, self._payment_prompt())

    def _payment_prompt(self) -> str:
        options = "\n".join(f"*{i}.* {m.label}" for i, m in enumerate(self.settings.payment_methods, start=1))
        return texts.PAYMENT_PROMPT.format(options=options)

    async def _payment_method(self, s: Session, body: str, msg: InboundMessage) -> None:
        methods = self.settings.payment_methods
        n = parse_positive_int(body)
        if n is None or n > len(methods):
            await self._send(s.identity, texts.PAYMENT_INVALID)
            return

        method = methods[n - 1]
        s.payment_method = method.label
        if method.flow == "cash":
            self._goto(s, State.CASH_AMOUNT)
            await self._send(s.identity, texts.CASH_PROMPT)
        elif method.flow == "verified_wallet":
            s.nequi_attempts = 0
            self._goto(s, State.WALLET_NUMBER_ENTRY)
            await self._send(
                s.identity,
                texts.WALLET_NUMBER_PROMPT.format(method=method.label, pay_number=self.settings.pay_number),
            )
        else:
            s.cash_tendered = None
            s.change = None
            await self._confirm(s)

    async def _cash_amount(self, s: Session, body: str, msg: InboundMessage) -> None:
        _lines, total = build_summary(s.cart, self._currency)
        amount = parse_amount(body)
        if amount is None or amount < total:
            await self._send(s.identity, texts.CASH_INVALID.format(total=self._price(total)))
            return
        s.cash_tendered = amount
        s.change = amount - total
        await self._confirm(s)

    async def _wallet_number_entry(self, s: Session, body: str, msg: InboundMessage) -> None:
        if WALLET_NUMBER_RE.match(body):
            s.wallet_number = body
            self._goto(s, State.AWAITING_PROOF)
            await self._send(s.identity, texts.PROOF_PROMPT)
            self._schedule_proof_reminder(s)
            return

        s.nequi_attempts += 1
        limit = self.settings.max_wallet_number_attempts
        if s.nequi_attempts >= limit:
            identity = s.identity
            self._end(s)
            await self._send(identity, texts.WALLET_NUMBER_EXHAUSTED)
            return
        await self._send(s.identity, texts.WALLET_NUMBER_INVALID.format(left=limit - s.nequi_attempts))

    def _schedule_proof_reminder(self, s: Session) -> None:
        identity, epoch = s.identity, s.epoch

        async def _remind() -> None:
            async with self.sessions.locked(identity) as cur:
                if cur.epoch == epoch and cur.state == State.AWAITING_PROOF:
                    await self._send(identity, texts.PROOF_REMINDER)

        self.supervisor.schedule(identity, "proof_reminder", self.settings.proof_reminder_seconds, _remind)

    async def _awaiting_proof(self, s: Session, body: str, msg: InboundMessage) -> None:
        if not msg.has_image:
            await self._send(s.identity, texts.PROOF_NOT_IMAGE)
            return

        media = await self.transport.download_media(msg)
        if media is None:
            await self._send(s.identity, texts.PROOF_DOWNLOAD_FAILED)
            return

        lines, total = build_summary(s.cart, self._currency)
        verification_id = await self.verifications.create(
            VerificationRecord(
                customer_identity=s.identity,
                customer_name=s.customer_name or "",
                order_summary=", ".join(lines),
                amount=total,
                payment_method=s.payment_method or "",
                timestamp=self._now().astimezone(ZoneInfo("UTC")).replace(tzinfo=None),
            )
        )
        s.verification_id = verification_id
        self._goto(s, State.PENDING_VERIFICATION)
        log_event(
            _trace_id.get(),
            "verification_posted",
            {"identity": s.identity, "verification_id": verification_id, "amount": str(total)},
        )
        await self._send(s.identity, texts.PROOF_RECEIVED)

        caption = texts.ADMIN_PROOF_CAPTION.format(
            method=s.payment_method,
            name=s.customer_name,
            identity=s.identity,
            wallet=s.wallet_number or "-",
            items=", ".join(lines),
            total=self._price(total),
        )
        await self._notify_admin(media, {"caption": caption})
        await self._notify_admin(texts.ADMIN_PROOF_PROMPT.format(verification_id=verification_id))
        self._schedule_verification_notice(s.identity, verification_id)

    def _schedule_verification_notice(self, identity: str, verification_id: str) -> None:
        async def _notice() -> None:
            if await self.verifications.is_pending(verification_id):
                await self._send(identity, texts.VERIFICATION_SLOW)

        self.supervisor.schedule(identity, "verification_notice", self.settings.verification_notice_seconds, _notice)

    async def _pending_verification(self, s: Session, body: str, msg: InboundMessage) -> None:
        await self._send(s.identity, texts.VERIFICATION_WAIT)

    async def _payment_was_denied(self, s: Session) -> None:
        s.denial_count += 1
        if s.denial_count >= self.settings.max_payment_denials:
            identity, name = s.identity, s.customer_name or ""
            self._end(s)
            await self._send(identity, texts.PAYMENT_DENIED_FINAL)
            await self._notify_admin(
                texts.ADMIN_AGENT_REQUEST.format(name=name, identity=identity, reason="payment denied twice")
            )
            return
        self._goto(s, State.PAYMENT_DENIED)
        await self._send(s.identity, texts.PAYMENT_DENIED)

    async def _payment_denied(self, s: Session, body: str, msg: InboundMessage) -> None:
        if body == "1":
            self._goto(s, State.AWAITING_PROOF)
            await self._send(s.identity, texts.RESEND_PROOF)
            self._schedule_proof_reminder(s)
        elif body == "2":
            identity = s.identity
            self._end(s)
            await self._send(identity, texts.BACK_TO_MAIN)
        elif body == "3":
            identity, name = s.identity, s.customer_name or ""
            self._end(s)
            await self._send(identity, texts.AGENT_HANDOFF)
            await self._notify_admin(
                texts.ADMIN_AGENT_REQUEST.format(name=name, identity=identity, reason="asked for an agent")
            )
        else:
            await self._send(s.identity, texts.PAYMENT_DENIED_INVALID)

    # -------------------
    # Terminal action
    # -------------------
    async def _confirm(self, s: Session) -> None:
        if s.order_code:
            return

        lines, total = build_summary(s.cart, self._currency)
        item_summary = "\n".join(lines)
        if s.special_instructions:
            item_summary += f"\nInstructions: {s.special_instructions}"
        now = self._now()

        record: Optional[OrderRecord] = None
        for _ in range(CODE_INSERT_ATTEMPTS):
            candidate = OrderRecord(
                code=generate_order_code(await self.orders.list_codes()),
                created_date=now.date(),
                created_time=now.strftime("%H:%M"),
                customer_identity=s.identity,
                customer_name=s.customer_name or "",
                address=s.address or "",
                item_summary=item_summary,
                payment_method=s.payment_method or "",
                total=total,
                status=ORDER_STATUS_IN_PREPARATION,
                cash_tendered=s.cash_tendered,
                change=s.change,
            )
            try:
                await self.orders.create_order(candidate)
            except DuplicateOrderCode:
                log_event(_trace_id.get(), "order_code_collision", {"code": candidate.code}, level=logging.WARNING)
                continue
            record = candidate
            break
        if record is None:
            raise OrderCodeError("Order code kept colliding on insert")

        s.order_code = record.code
        log_event(
            _trace_id.get(),
            "order_created",
            {"identity": s.identity, "code": record.code, "total": str(total), "payment": record.payment_method},
        )

        try:
            await self.history.upsert(s.identity, s.customer_name or "")
        except StoreError as e:
            log_event(_trace_id.get(), "history_update_failed", {"identity": s.identity, "error": e}, level=logging.WARNING)

        msg = texts.CONFIRMATION.format(
            code=record.code, name=record.customer_name, address=record.address, lines="\n".join(lines)
        )
        if s.special_instructions:
            msg += texts.INSTRUCTIONS_LINE.format(instructions=s.special_instructions)
        msg += texts.TOTAL_AND_PAYMENT.format(total=self._price(total), payment=record.payment_method)
        if s.cash_tendered is not None and s.change is not None:
            msg += texts.CONFIRMATION_CASH.format(tendered=self._price(s.cash_tendered), change=self._price(s.change))
        msg += texts.CONFIRMATION_FOOTER.format(minutes=delivery_minutes(now))

        identity = s.identity
        admin_msg = texts.ADMIN_NEW_ORDER.format(
            code=record.code, name=record.customer_name, address=record.address, lines="\n".join(lines)
        )
        if s.special_instructions:
            admin_msg += texts.INSTRUCTIONS_LINE.format(instructions=s.special_instructions)
        admin_msg += texts.TOTAL_AND_PAYMENT.format(total=self._price(total), payment=record.payment_method)

        # the order is stored; send failures past this point are only logged
        self._end(s)
        try:
            await self._send(identity, msg)
        except TransportError as e:
            log_event(
                _trace_id.get(),
                "confirmation_send_failed",
                {"identity": identity, "code": record.code, "error": e},
                level=logging.ERROR,
            )
        else:
            await self._send_sticker(identity)
        await self._notify_admin(admin_msg)

    async def _send_sticker(self, identity: str) -> None:
        path = Path(self.settings.sticker_path)
        if not path.is_file():
            return
        try:
            await self._send(identity, Media.from_file(path, "image/webp"), {"as_sticker": True})
        except (OSError, TransportError) as e:
            log_event(_trace_id.get(), "sticker_failed", {"error": e}, level=logging.WARNING)
