# orderbot/main.py
from __future__ import annotations

import hashlib
import hmac
import json
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from .auth import create_token, ensure_staff_user, require_staff, verify_password
from .config import Settings, settings
from .db import Base, SessionLocal, engine, get_db
from .kitchen import router as kitchen_router
from .log import logger
from .models import StaffUser
from .ordering.brain import AdminDecision, ConversationEngine, parse_admin_reply
from .ordering.menu_store import CatalogService, json_file_loader
from .ordering.stores import SqlHistoryStore, SqlOrderStore, SqlVerificationLog, VerificationLog
from .transport import InboundMessage, WhatsAppCloudTransport, parse_webhook


def build_engine(cfg: Settings, session_factory=SessionLocal) -> ConversationEngine:
    return ConversationEngine(
        transport=WhatsAppCloudTransport(cfg.whatsapp_token, cfg.phone_number_id, cfg.graph_version),
        catalog=CatalogService(json_file_loader(cfg.menu_path), ttl_seconds=cfg.menu_cache_ttl),
        orders=SqlOrderStore(session_factory),
        history=SqlHistoryStore(session_factory),
        verifications=SqlVerificationLog(session_factory),
        settings=cfg,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        ensure_staff_user(db, settings.kitchen_email, settings.kitchen_password)
    finally:
        db.close()
    if not settings.app_secret:
        logger.warning("WHATSAPP_APP_SECRET not set: webhook signatures are not checked, admin chat replies are ignored")
    yield


app = FastAPI(
    title="Restaurant Ordering Bot",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)

Base.metadata.create_all(bind=engine)

bot = build_engine(settings)
app.state.engine = bot
app.state.orders = bot.orders
app.include_router(kitchen_router)


# -------------------
# Schemas
# -------------------
class LoginIn(BaseModel):
    email: EmailStr
    password: str


class DecisionIn(BaseModel):
    approved: bool


# -------------------
# Helpers
# -------------------
def get_engine(request: Request) -> ConversationEngine:
    return request.app.state.engine


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check Meta's X-Hub-Signature-256 header (HMAC-SHA256 of the raw body)."""
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    if signature.startswith("sha256="):
        signature = signature[7:]
    return hmac.compare_digest(expected, signature)


async def admin_decision_from_text(text: str, verifications: VerificationLog) -> Optional[AdminDecision]:
    """
    Admin chat reply -> AdminDecision. Without an explicit id the reply
    applies to the most recent pending verification.
    """
    parsed = parse_admin_reply(text)
    if parsed is None:
        return None
    approved, vid = parsed
    if vid is None:
        last = await verifications.get_last_pending()
        if last is None:
            return None
        vid = last.id
    return AdminDecision(verification_id=vid, approved=approved)


# -------------------
# Health
# -------------------
@app.get("/")
def root():
    return {"ok": True, "service": "orderbot", "restaurant": settings.restaurant_name}


# -------------------
# WhatsApp webhook
# -------------------
@app.get("/webhook")
def verify_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
):
    if hub_mode == "subscribe" and hub_verify_token == settings.verify_token and hub_challenge:
        return PlainTextResponse(hub_challenge)
    logger.warning("Webhook verification failed: mode=%s", hub_mode)
    raise HTTPException(status_code=403, detail="Verification failed")


@app.post("/webhook")
async def webhook(request: Request, engine: ConversationEngine = Depends(get_engine)):
    raw = await request.body()
    secret = engine.settings.app_secret
    if secret and not verify_signature(raw, request.headers.get("X-Hub-Signature-256", ""), secret):
        logger.warning("Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    try:
        payload: Dict[str, Any] = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    handled = 0
    for msg in parse_webhook(payload):
        # payment decisions are only taken from signed deliveries
        if secret and await _handle_admin_message(engine, msg):
            handled += 1
            continue
        await engine.handle_message(msg)
        handled += 1
    return {"ok": True, "handled": handled}


async def _handle_admin_message(engine: ConversationEngine, msg: InboundMessage) -> bool:
    admin = engine.settings.admin_identity
    if not admin or msg.sender != admin:
        return False
    decision = await admin_decision_from_text(msg.body, engine.verifications)
    if decision is None:
        return False
    await engine.handle_admin_decision(decision)
    return True


# -------------------
# Admin decision (typed channel)
# -------------------
@app.post("/admin/verifications/{verification_id}/decision")
async def decide_verification(
    verification_id: str,
    payload: DecisionIn,
    _staff_id: int = Depends(require_staff),
    engine: ConversationEngine = Depends(get_engine),
):
    if await engine.verifications.get(verification_id) is None:
        raise HTTPException(status_code=404, detail="Verification not found")
    applied = await engine.handle_admin_decision(
        AdminDecision(verification_id=verification_id, approved=payload.approved)
    )
    return {"ok": True, "applied": applied}


# -------------------
# Auth
# -------------------
@app.post("/auth/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    u = db.query(StaffUser).filter(StaffUser.email == payload.email).first()
    if not u or not verify_password(payload.password, u.password_hash):
        raise HTTPException(status_code=401, detail="Bad credentials")
    return {"token": create_token(u.id)}
