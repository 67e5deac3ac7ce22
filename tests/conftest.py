import os
import tempfile

# must be set before orderbot.config / orderbot.db are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["INVOICE_DIR"] = tempfile.mkdtemp(prefix="orderbot-invoices-")
os.environ["MENU_PATH"] = os.path.join(os.path.dirname(__file__), "..", "data", "menu.json")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["KITCHEN_EMAIL"] = "kitchen@arepazo.co"
os.environ["KITCHEN_PASSWORD"] = "fogon-2024"
os.environ["WHATSAPP_APP_SECRET"] = "test-app-secret"

import pytest  # noqa: E402

from fakes import Harness  # noqa: E402


@pytest.fixture
def bot():
    return Harness()
