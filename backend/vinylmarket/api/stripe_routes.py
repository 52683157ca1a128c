"""
Stripe checkout and webhook endpoints.

The webhook handler reads the raw request body: the signature is computed
over the exact bytes, so the body must never go through JSON parsing
first.
"""

from fastapi import APIRouter, Depends, Header, Request
import structlog

from ..core.config import get_settings
from ..schemas.checkout import CheckoutRequest, CheckoutResponse, WebhookAck
from ..security.auth import TokenPayload, get_current_active_user
from ..security.rate_limiter import RateLimits, limiter
from ..services.checkout import CheckoutService
from ..services.webhooks import WebhookProcessor
from .deps import get_checkout_service, get_webhook_processor

settings = get_settings()
logger = structlog.get_logger(__name__)

router = APIRouter(tags=["stripe"])


@router.post("/stripe/create-checkout-session", response_model=CheckoutResponse)
@limiter.limit(RateLimits.CHECKOUT)
async def create_checkout_session(
    request: Request,
    payload: CheckoutRequest,
    user: TokenPayload = Depends(get_current_active_user),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Open a hosted checkout session for the cart and return its URL."""
    return await checkout.create_checkout_session(payload, user)


@router.post(settings.stripe_webhook_path, response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Handle Stripe webhook events."""
    body = await request.body()
    result = await processor.handle(body, stripe_signature)

    logger.info(
        "webhook_processed",
        event_type=result.event_type,
        event_id=result.event_id,
        handled=result.handled,
        duplicate=result.duplicate,
    )
    return WebhookAck(received=True)
