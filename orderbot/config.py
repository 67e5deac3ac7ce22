# orderbot/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env locally (safe in prod too)
load_dotenv()


PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_MENU_PATH = PROJECT_ROOT / "data" / "menu.json"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


class PaymentMethod(BaseModel):
    key: str
    label: str
    flow: str  # cash | wallet | verified_wallet


DEFAULT_PAYMENT_METHODS: List[PaymentMethod] = [
    PaymentMethod(key="cash", label="Cash", flow="cash"),
    PaymentMethod(key="nequi", label="Nequi", flow="verified_wallet"),
    PaymentMethod(key="daviplata", label="Daviplata", flow="wallet"),
]


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./orderbot.db")
    menu_path: str = os.getenv("MENU_PATH", str(DEFAULT_MENU_PATH))
    menu_cache_ttl: int = _env_int("MENU_CACHE_TTL", 15 * 60)

    restaurant_name: str = os.getenv("RESTAURANT_NAME", "El Arepazo")
    timezone: str = os.getenv("RESTAURANT_TZ", "America/Bogota")
    currency_symbol: str = os.getenv("CURRENCY_SYMBOL", "$")
    location_text: str = os.getenv("LOCATION_TEXT", "Calle 123 #45-67, Viterbo, Caldas.")
    location_url: str = os.getenv("LOCATION_URL", "")

    admin_identity: str = os.getenv("ADMIN_IDENTITY", "").strip()
    pay_number: str = os.getenv("PAY_NUMBER", "").strip()
    payment_methods: List[PaymentMethod] = Field(default_factory=lambda: list(DEFAULT_PAYMENT_METHODS))

    inactivity_warning_seconds: float = _env_int("INACTIVITY_WARNING_SECONDS", 45 * 60)
    inactivity_timeout_seconds: float = _env_int("INACTIVITY_TIMEOUT_SECONDS", 90 * 60)
    proof_reminder_seconds: float = _env_int("PROOF_REMINDER_SECONDS", 3 * 60)
    verification_notice_seconds: float = _env_int("VERIFICATION_NOTICE_SECONDS", 5 * 60)
    max_wallet_number_attempts: int = 3
    max_payment_denials: int = 2

    sticker_path: str = os.getenv("STICKER_PATH", str(PROJECT_ROOT / "sticker.webp"))
    welcome_image_path: str = os.getenv("WELCOME_IMAGE_PATH", str(PROJECT_ROOT / "logo.jpg"))
    invoice_dir: str = os.getenv("INVOICE_DIR", str(PROJECT_ROOT / "invoices"))

    whatsapp_token: str = os.getenv("WHATSAPP_TOKEN", "").strip()
    phone_number_id: str = os.getenv("PHONE_NUMBER_ID", "").strip()
    verify_token: str = os.getenv("VERIFY_TOKEN", "orderbot-verify")
    app_secret: str = os.getenv("WHATSAPP_APP_SECRET", "").strip()
    graph_version: str = os.getenv("GRAPH_VERSION", "v22.0")

    kitchen_email: str = os.getenv("KITCHEN_EMAIL", "").strip()
    kitchen_password: str = os.getenv("KITCHEN_PASSWORD", "").strip()


settings = Settings()
