"""
Payment gateway adapter.

The webhook processor and the checkout builder only talk to the
``PaymentGateway`` protocol. ``StripeGateway`` is the production
implementation; it is built once at startup from settings and handed to
both components.
"""

import json
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

import stripe
import structlog

from ..core.errors import GatewayError, WebhookPayloadError, WebhookSignatureError

logger = structlog.get_logger(__name__)

# Expansion needed to read product metadata (the vinyl id) from line items
LINE_ITEMS_EXPAND = ["line_items", "line_items.data.price.product"]

MINOR_UNITS = Decimal("100")


def to_minor_units(amount: Decimal) -> int:
    """29.99 -> 2999. usd, eur and gel all use two decimal places."""
    return int((Decimal(amount) * MINOR_UNITS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | None) -> Decimal:
    return (Decimal(amount or 0) / MINOR_UNITS).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class GatewayLineItem:
    """A line item sent to the gateway when opening a checkout session."""
    name: str
    unit_amount: int  # minor units
    currency: str
    quantity: int
    vinyl_id: int
    image: str | None = None


@dataclass(frozen=True)
class SessionLineItem:
    """A line item as reported back by the gateway."""
    description: str
    quantity: int
    unit_amount: int
    amount_total: int
    # Raw product metadata value; may be missing or malformed
    vinyl_id: str | None

    @classmethod
    def from_payload(cls, data: dict) -> "SessionLineItem":
        price = data.get("price") or {}
        product = price.get("product")
        metadata = (product.get("metadata") if isinstance(product, dict) else None) or {}
        return cls(
            description=data.get("description") or "",
            quantity=data.get("quantity") or 1,
            unit_amount=price.get("unit_amount") or 0,
            amount_total=data.get("amount_total") or 0,
            vinyl_id=metadata.get("vinylId"),
        )


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str | None = None
    customer_email: str | None = None
    payment_intent_id: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    payment_status: str | None = None
    line_items: list[SessionLineItem] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict) -> "CheckoutSession":
        customer_details = data.get("customer_details") or {}
        payment_intent = data.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        line_items = (data.get("line_items") or {}).get("data") or []
        return cls(
            id=data["id"],
            url=data.get("url"),
            customer_email=data.get("customer_email") or customer_details.get("email"),
            payment_intent_id=payment_intent,
            amount_total=data.get("amount_total"),
            currency=data.get("currency"),
            payment_status=data.get("payment_status"),
            line_items=[SessionLineItem.from_payload(item) for item in line_items],
        )


@dataclass(frozen=True)
class WebhookEvent:
    """A verified gateway notification. Lives for one request only."""
    id: str
    type: str
    data: dict

    @classmethod
    def from_payload(cls, payload: dict) -> "WebhookEvent":
        if not isinstance(payload, dict):
            raise WebhookPayloadError("Webhook Error: event must be a JSON object")
        try:
            return cls(
                id=payload.get("id", ""),
                type=payload["type"],
                data=payload["data"]["object"],
            )
        except (KeyError, TypeError) as e:
            raise WebhookPayloadError(f"Webhook Error: missing field {e}") from e


class PaymentGateway(Protocol):
    async def create_checkout_session(
        self,
        *,
        line_items: list[GatewayLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: str | None,
    ) -> CheckoutSession: ...

    async def retrieve_session(self, session_id: str, *, expand_line_items: bool = False) -> CheckoutSession: ...

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent: ...


class StripeGateway:
    """``PaymentGateway`` backed by the Stripe API."""

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300):
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is not configured")
        self._client = stripe.StripeClient(api_key, http_client=stripe.HTTPXClient())
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance

    async def create_checkout_session(
        self,
        *,
        line_items: list[GatewayLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: str | None,
    ) -> CheckoutSession:
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [self._line_item_params(item) for item in line_items],
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await self._client.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            logger.error("stripe_session_create_failed", error=str(e))
            raise GatewayError("Failed to create checkout session") from e

        return CheckoutSession.from_payload(session.to_dict())

    async def retrieve_session(self, session_id: str, *, expand_line_items: bool = False) -> CheckoutSession:
        params = {"expand": LINE_ITEMS_EXPAND} if expand_line_items else {}
        try:
            session = await self._client.checkout.sessions.retrieve_async(session_id, params=params)
        except stripe.StripeError as e:
            logger.error("stripe_session_retrieve_failed", session_id=session_id, error=str(e))
            raise GatewayError(f"Failed to retrieve checkout session {session_id}") from e

        return CheckoutSession.from_payload(session.to_dict())

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the signature over the exact raw bytes, then parse."""
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookPayloadError("Webhook Error: body is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(body, signature, self._webhook_secret, self._tolerance)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Webhook Error: {e}") from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise WebhookPayloadError(f"Webhook Error: {e}") from e

        return WebhookEvent.from_payload(data)

    @staticmethod
    def _line_item_params(item: GatewayLineItem) -> dict:
        product_data: dict[str, Any] = {
            "name": item.name,
            "metadata": {"vinylId": str(item.vinyl_id)},
        }
        if item.image:
            product_data["images"] = [item.image]

        return {
            "quantity": item.quantity,
            "price_data": {
                "currency": item.currency,
                "unit_amount": item.unit_amount,
                "product_data": product_data,
            },
        }
