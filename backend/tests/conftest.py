"""Shared fixtures: a file-backed SQLite database, a fake payment gateway
and a recording notifier."""
import json
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Settings are read at import time by several modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

import pytest
import pytest_asyncio

from vinylmarket import models  # noqa: F401  registers the tables on Base.metadata
from vinylmarket.core.config import Environment, Settings
from vinylmarket.core.database import Base, build_engine, build_session_factory
from vinylmarket.core.errors import GatewayError, WebhookSignatureError
from vinylmarket.models import User, Vinyl
from vinylmarket.security.auth import TokenPayload
from vinylmarket.services.gateway import CheckoutSession, GatewayLineItem, WebhookEvent

WEBHOOK_SECRET = "whsec_test_secret"
VALID_SIGNATURE = "t=1,v1=valid"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        secret_key="test-secret-key-not-for-production",
        environment=Environment.TEST,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'market.db'}",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        rate_limit_enabled=False,
        notification_workers=1,
        notification_drain_timeout=2.0,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = build_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = build_session_factory(engine)
    async with factory() as session:
        async with session.begin():
            session.add_all([
                User(id=1, email="alice@vinyl-shop.com", role="user"),
                User(id=2, email="bob@vinyl-shop.com", role="user"),
                User(id=3, email="carol@vinyl-shop.com", role="user"),
                User(id=9, email="admin@vinyl-shop.com", role="admin"),
            ])
            session.add_all([
                Vinyl(id=1, name="Kind of Blue", author_name="Miles Davis",
                      image="https://img.vinyl-shop.com/kind-of-blue.jpg",
                      description="Modal jazz", price=Decimal("29.99"), owner_id=9),
                Vinyl(id=2, name="Blue Train", author_name="John Coltrane",
                      description="Hard bop", price=Decimal("34.99"), owner_id=9),
            ])
    return factory


@pytest.fixture
def get_rating(session_factory):
    async def _get_rating(vinyl_id: int) -> Decimal:
        async with session_factory() as session:
            vinyl = await session.get(Vinyl, vinyl_id)
            return vinyl.average_rating
    return _get_rating


def make_token_payload(user_id: int, email: str | None = None, roles: list[str] | None = None) -> TokenPayload:
    return TokenPayload(
        sub=str(user_id),
        exp=datetime.now(timezone.utc) + timedelta(minutes=15),
        type="access",
        email=email,
        roles=roles or ["user"],
    )


@pytest.fixture
def users() -> dict[str, TokenPayload]:
    return {
        "alice": make_token_payload(1, "alice@vinyl-shop.com"),
        "bob": make_token_payload(2, "bob@vinyl-shop.com"),
        "carol": make_token_payload(3, "carol@vinyl-shop.com"),
        "admin": make_token_payload(9, "admin@vinyl-shop.com", roles=["admin"]),
    }


def paid_session_payload(session_id: str, email: str | None = "buyer@vinyl-shop.com", extra_items=()) -> dict:
    """A checkout session as Stripe returns it with line items and products expanded."""
    return {
        "id": session_id,
        "object": "checkout.session",
        "url": None,
        "customer_details": {"email": email},
        "payment_intent": f"pi_{session_id}",
        "amount_total": 9497,
        "currency": "usd",
        "payment_status": "paid",
        "line_items": {
            "object": "list",
            "data": [
                {
                    "description": "Kind of Blue — Miles Davis",
                    "quantity": 2,
                    "amount_total": 5998,
                    "price": {"unit_amount": 2999, "product": {"metadata": {"vinylId": "1"}}},
                },
                {
                    "description": "Blue Train — John Coltrane",
                    "quantity": 1,
                    "amount_total": 3499,
                    "price": {"unit_amount": 3499, "product": {"metadata": {"vinylId": "2"}}},
                },
                *extra_items,
            ],
        },
    }


def completed_event(session_id: str, event_id: str = "evt_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "object": "checkout.session"}},
    }).encode()


class FakeGateway:
    """In-memory PaymentGateway. Accepts only ``VALID_SIGNATURE``."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}
        self.created: list[dict] = []
        self.retrieved: list[tuple[str, bool]] = []
        self.fail_create = False

    def add_session(self, payload: dict) -> None:
        self.sessions[payload["id"]] = payload

    async def create_checkout_session(
        self,
        *,
        line_items: list[GatewayLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: str | None,
    ) -> CheckoutSession:
        if self.fail_create:
            raise GatewayError("Failed to create checkout session")
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append({
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        })
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    async def retrieve_session(self, session_id: str, *, expand_line_items: bool = False) -> CheckoutSession:
        self.retrieved.append((session_id, expand_line_items))
        if session_id not in self.sessions:
            raise GatewayError(f"Failed to retrieve checkout session {session_id}")
        return CheckoutSession.from_payload(self.sessions[session_id])

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError("Webhook Error: No signatures found matching the expected signature")
        return WebhookEvent.from_payload(json.loads(payload))


class RecordingNotifier:
    def __init__(self, fail: bool = False, channel: str = "recording"):
        self.receipts = []
        self.fail = fail
        self.channel = channel

    async def notify_order_paid(self, receipt) -> None:
        self.receipts.append(receipt)
        if self.fail:
            raise RuntimeError("SMTP connection refused")


class RecordingChannel:
    """NotificationChannel that keeps receipts instead of running jobs."""

    def __init__(self):
        self.receipts = []

    async def submit_order_paid(self, receipt) -> bool:
        self.receipts.append(receipt)
        return True


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
