import sys
import os
import hashlib
import hmac
import itertools
import json
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock

# Add the backend directory to the Python path
# This is necessary for pytest to find the 'main' module and other packages
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

WEBHOOK_SECRET = "whsec_test_secret_key_for_webhook_verification"

# Settings are read once at import time
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
os.environ.setdefault("MAILGUN_API_KEY", "key-test")
os.environ.setdefault("MAILGUN_DOMAIN", "mg.example.com")
os.environ.setdefault("FRONTEND_URL", "https://shop.example.com")
os.environ.setdefault("MEDIA_BASE_URL", "https://cms.example.com")
os.environ.setdefault("STRIPE_SYNC_DELAY_SECONDS", "0")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.database import get_db, Base
from core.dependencies import get_email_service, get_stripe_gateway
from core.exceptions import ExternalServiceException
from core.stripe_client import StripeGateway
from models.catalog import Product, Engraving
from services.catalog import CatalogStore, LifecycleRegistry
from services.catalog_sync import CatalogSyncService
from services.email import EmailService

SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeStripeGateway(StripeGateway):
    """
    In-memory Stripe: products, prices, sessions, shipping rates and invoices.
    Webhook verification is inherited, so real HMAC signatures are checked.
    Operations listed in ``fail_on`` raise ExternalServiceException.
    """

    def __init__(self, webhook_secret: Optional[str] = WEBHOOK_SECRET):
        super().__init__("sk_test_fake", webhook_secret)
        self.products: Dict[str, dict] = {}
        self.prices: Dict[str, dict] = {}
        self.sessions: Dict[str, dict] = {}
        self.invoices: Dict[str, dict] = {}
        self.shipping_rates: List[dict] = []
        self.created_sessions: List[dict] = []
        self.retrieved_sessions: List[tuple] = []
        self.calls: List[str] = []
        self.fail_on = set()
        self._ids = itertools.count(1)

    def _record(self, operation: str):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise ExternalServiceException(message=f"Stripe error during {operation}", service="stripe")

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids):08d}"

    async def create_product(self, name, description=None, images=None, metadata=None):
        self._record("create_product")
        product = {
            "id": self._new_id("prod"),
            "object": "product",
            "name": name,
            "description": description,
            "images": images or [],
            "metadata": dict(metadata or {}),
            "active": True,
        }
        self.products[product["id"]] = product
        return product

    async def retrieve_product(self, product_id):
        self._record("retrieve_product")
        return self.products[product_id]

    async def update_product(self, product_id, **fields):
        self._record("update_product")
        self.products[product_id].update(fields)
        return self.products[product_id]

    async def archive_product(self, product_id):
        self._record("archive_product")
        self.products[product_id]["active"] = False
        return self.products[product_id]

    async def create_price(self, product_id, unit_amount, currency, metadata=None):
        self._record("create_price")
        price = {
            "id": self._new_id("price"),
            "object": "price",
            "product": product_id,
            "unit_amount": unit_amount,
            "currency": currency,
            "metadata": dict(metadata or {}),
            "active": True,
        }
        self.prices[price["id"]] = price
        return price

    async def retrieve_price(self, price_id):
        self._record("retrieve_price")
        return self.prices[price_id]

    async def deactivate_price(self, price_id):
        self._record("deactivate_price")
        self.prices[price_id]["active"] = False
        return self.prices[price_id]

    async def create_checkout_session(self, params):
        self._record("create_checkout_session")
        self.created_sessions.append(params)
        session_id = self._new_id("cs_test")
        return {"id": session_id, "object": "checkout.session", "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    async def retrieve_checkout_session(self, session_id, expand=None):
        self._record("retrieve_checkout_session")
        self.retrieved_sessions.append((session_id, expand))
        return self.sessions[session_id]

    async def list_shipping_rates(self, active=True, limit=100):
        self._record("list_shipping_rates")
        return [rate for rate in self.shipping_rates if rate.get("active", True) == active][:limit]

    async def retrieve_invoice(self, invoice_id):
        self._record("retrieve_invoice")
        return self.invoices[invoice_id]

    def active_prices(self, product_id: str) -> List[dict]:
        return [p for p in self.prices.values() if p["product"] == product_id and p["active"]]


def generate_stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Generate a valid Stripe webhook signature"""
    if timestamp is None:
        timestamp = int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}"
    signature = hmac.new(
        secret.encode('utf-8'),
        signed_payload.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event_payload(event_type: str, data_object: Dict[str, Any], event_id: str = "evt_test_0001") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": data_object},
    }).encode("utf-8")


def make_line_item(name: str, amount_total: int, quantity: int = 1, metadata: Optional[dict] = None) -> dict:
    return {
        "object": "item",
        "description": name,
        "quantity": quantity,
        "amount_total": amount_total,
        "price": {
            "object": "price",
            "unit_amount": amount_total // quantity,
            "product": {"object": "product", "name": name, "metadata": metadata or {}},
        },
    }


def make_completed_session(
    session_id: str,
    line_items: List[dict],
    metadata: Optional[dict] = None,
    email: Optional[str] = "client@example.com",
    amount_subtotal: int = 0,
    amount_shipping: int = 0,
    invoice: Optional[str] = None,
) -> dict:
    return {
        "id": session_id,
        "object": "checkout.session",
        "customer_details": {"email": email, "name": "Marie Curie"},
        "metadata": metadata or {},
        "line_items": {"object": "list", "data": line_items},
        "amount_subtotal": amount_subtotal,
        "amount_total": amount_subtotal + amount_shipping,
        "total_details": {"amount_shipping": amount_shipping},
        "currency": "eur",
        "shipping_details": {
            "name": "Marie Curie",
            "address": {"line1": "1 rue Pierre et Marie Curie", "city": "Paris", "postal_code": "75005", "country": "FR"},
        },
        "invoice": invoice,
    }


def published_at() -> datetime:
    return datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry() -> LifecycleRegistry:
    return LifecycleRegistry()


@pytest.fixture
def fake_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def sync_service(fake_gateway) -> CatalogSyncService:
    return CatalogSyncService(
        gateway_factory=lambda: fake_gateway,
        currency="eur",
        media_base_url="https://cms.example.com",
        delay_seconds=0,
    )


@pytest.fixture
def product_store(db_session, registry) -> CatalogStore:
    return CatalogStore(db_session, Product, registry=registry)


@pytest.fixture
def engraving_store(db_session, registry) -> CatalogStore:
    return CatalogStore(db_session, Engraving, registry=registry)


@pytest.fixture
async def mug(product_store) -> Product:
    """Published product, not linked to Stripe (no hooks registered on the store yet)."""
    return await product_store.create({
        "name": "Mug",
        "slug": "mug",
        "price": Decimal("12.00"),
        "image_url": "/uploads/mug.png",
        "published_at": published_at(),
    })


@pytest.fixture
async def engraving(engraving_store) -> Engraving:
    return await engraving_store.create({
        "title": "Gravure texte",
        "price": Decimal("5.00"),
        "published_at": published_at(),
    })


@pytest.fixture
def mail_sender() -> AsyncMock:
    return AsyncMock(return_value={"id": "<20250101.1@mg.example.com>", "message": "Queued. Thank you."})


@pytest.fixture
def email_service(mail_sender) -> EmailService:
    service = EmailService(sender=mail_sender)
    service.fetch_invoice = AsyncMock(return_value=None)
    return service


@pytest.fixture
async def async_client(db_session, fake_gateway, email_service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the database, Stripe and Mailgun replaced."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_email_service] = lambda: email_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
