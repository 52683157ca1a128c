"""
Payment gateway webhook processing.

Deliveries are at-least-once and unordered. Each event is handled on its
own; the only idempotency guard is the unique session id on ``orders``,
so a redelivered ``checkout.session.completed`` is acknowledged without
creating a second order.
"""

from dataclasses import dataclass
import traceback

import structlog

from ..core.errors import DuplicateOrderError, MarketError, WebhookProcessingError, WebhookSignatureError
from ..core.metrics import webhook_events_total
from ..models import LogLevel
from .gateway import CheckoutSession, PaymentGateway, WebhookEvent, from_minor_units
from .jobs import NotificationChannel
from .notifications import OrderReceipt
from .orders import OrderItemInput, OrderService
from .system_logs import SystemLogService

logger = structlog.get_logger(__name__)

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"


@dataclass(frozen=True)
class WebhookResult:
    event_id: str
    event_type: str
    handled: bool
    duplicate: bool = False
    order_id: int | None = None


class WebhookProcessor:
    def __init__(
        self,
        gateway: PaymentGateway,
        orders: OrderService,
        notifications: NotificationChannel,
        system_logs: SystemLogService | None = None,
    ):
        self._gateway = gateway
        self._orders = orders
        self._notifications = notifications
        self._system_logs = system_logs

    async def handle(self, raw_body: bytes, signature: str | None) -> WebhookResult:
        """Verify, parse and dispatch one delivery.

        Signature and payload problems raise 400-class errors straight
        away. Failures while handling a verified event are logged, kept in
        the system log with their traceback and re-raised as
        ``WebhookProcessingError`` so the gateway retries.
        """
        if not signature:
            raise WebhookSignatureError("Missing stripe-signature header")

        event = self._gateway.construct_event(raw_body, signature)
        log = logger.bind(event_id=event.id, event_type=event.type)
        log.info("webhook_received")

        try:
            result = await self._dispatch(event)
        except Exception as e:
            message = e.message if isinstance(e, MarketError) else str(e)
            webhook_events_total.labels(type=event.type, outcome="failed").inc()
            log.error("webhook_processing_failed", error=message, exc_info=True)
            stack = "".join(traceback.format_exception(e))
            await self._record(
                f"Webhook processing error for {event.type} ({event.id}): {message} - Stack: {stack}",
                LogLevel.ERROR,
            )
            raise WebhookProcessingError(f"Webhook processing error: {message}") from e

        return result

    async def _dispatch(self, event: WebhookEvent) -> WebhookResult:
        if event.type == CHECKOUT_SESSION_COMPLETED:
            return await self._handle_checkout_session_completed(event)

        if event.type == PAYMENT_INTENT_SUCCEEDED:
            # Settlement is not tracked yet
            payment_intent_id = event.data.get("id")
            logger.info("payment_intent_succeeded", payment_intent_id=payment_intent_id)
            webhook_events_total.labels(type=event.type, outcome="handled").inc()
            await self._record(f"PaymentIntent succeeded {payment_intent_id}")
            return WebhookResult(event_id=event.id, event_type=event.type, handled=True)

        logger.info("webhook_event_unhandled", event_id=event.id, event_type=event.type)
        webhook_events_total.labels(type=event.type, outcome="ignored").inc()
        await self._record(f"Unhandled Stripe event type: {event.type}")
        return WebhookResult(event_id=event.id, event_type=event.type, handled=False)

    async def _handle_checkout_session_completed(self, event: WebhookEvent) -> WebhookResult:
        session_id = event.data["id"]
        logger.info("checkout_session_completed", session_id=session_id)
        await self._record(f"Checkout session completed {session_id}")

        # The event payload does not carry line items; the gateway is the source of truth
        session = await self._gateway.retrieve_session(session_id, expand_line_items=True)
        items = self._order_items(session)

        try:
            order = await self._orders.create_order(
                email=session.customer_email or "",
                stripe_session_id=session.id,
                stripe_payment_intent_id=session.payment_intent_id,
                total_amount=from_minor_units(session.amount_total),
                items=items,
            )
        except DuplicateOrderError:
            logger.info("webhook_duplicate_session", session_id=session.id, event_id=event.id)
            webhook_events_total.labels(type=event.type, outcome="duplicate").inc()
            await self._record(f"Order already exists for session {session.id}; event {event.id} acknowledged")
            return WebhookResult(event_id=event.id, event_type=event.type, handled=True, duplicate=True)

        webhook_events_total.labels(type=event.type, outcome="handled").inc()
        await self._record(f"Order created successfully for session {session.id}")

        if session.customer_email:
            queued = await self._notifications.submit_order_paid(
                OrderReceipt.from_session(session, order_id=order.id)
            )
            logger.info("order_notification_queued", session_id=session.id, queued=queued)
            if not queued:
                await self._record(
                    f"Failed to queue receipt notification for session {session.id}", LogLevel.ERROR
                )

        return WebhookResult(
            event_id=event.id, event_type=event.type, handled=True, order_id=order.id
        )

    async def _record(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        if self._system_logs is not None:
            await self._system_logs.record(message, level)

    @staticmethod
    def _order_items(session: CheckoutSession) -> list[OrderItemInput]:
        return [
            OrderItemInput(
                vinyl_id=item.vinyl_id,
                quantity=item.quantity,
                price=from_minor_units(item.unit_amount),
            )
            for item in session.line_items
        ]
