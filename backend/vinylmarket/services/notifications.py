"""
Order notifications (email receipt, Telegram channel broadcast).

Every sink is best effort: ``CompositeNotifier`` logs and counts failures
and never raises, so a broken mailbox can not affect an order that is
already committed. It reports which channels failed so the Celery task
can retry just those.
"""

import html
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib
import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import Settings
from ..core.metrics import notifications_total
from .gateway import CheckoutSession, from_minor_units

logger = structlog.get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


@dataclass(frozen=True)
class ReceiptLine:
    description: str
    quantity: int
    amount_total: Decimal


@dataclass(frozen=True)
class OrderReceipt:
    """What a notification needs to know about a paid session."""
    session_id: str
    customer_email: str | None
    total_amount: Decimal
    currency: str | None
    lines: list[ReceiptLine] = field(default_factory=list)
    order_id: int | None = None

    @classmethod
    def from_session(cls, session: CheckoutSession, order_id: int | None = None) -> "OrderReceipt":
        return cls(
            session_id=session.id,
            customer_email=session.customer_email,
            total_amount=from_minor_units(session.amount_total),
            currency=session.currency,
            lines=[
                ReceiptLine(
                    description=item.description,
                    quantity=item.quantity,
                    amount_total=from_minor_units(item.amount_total),
                )
                for item in session.line_items
            ],
            order_id=order_id,
        )

    def to_dict(self) -> dict:
        """JSON-safe form, used as the Celery task argument."""
        data = asdict(self)
        data["total_amount"] = str(self.total_amount)
        data["lines"] = [{**line, "amount_total": str(line["amount_total"])} for line in data["lines"]]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "OrderReceipt":
        return cls(
            session_id=data["session_id"],
            customer_email=data.get("customer_email"),
            total_amount=Decimal(data["total_amount"]),
            currency=data.get("currency"),
            lines=[
                ReceiptLine(
                    description=line["description"],
                    quantity=line["quantity"],
                    amount_total=Decimal(line["amount_total"]),
                )
                for line in data.get("lines", [])
            ],
            order_id=data.get("order_id"),
        )


class NotificationSink(Protocol):
    channel: str

    async def notify_order_paid(self, receipt: OrderReceipt) -> None: ...


class EmailReceiptNotifier:
    """Sends the order confirmation email over SMTP."""

    channel = "email"

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self._settings.email_user and self._settings.email_password)

    def render(self, receipt: OrderReceipt) -> EmailMessage:
        rows = "".join(
            "<tr>"
            f'<td style="padding: 10px; border-bottom: 1px solid #ddd;">{html.escape(line.description)}</td>'
            f'<td style="padding: 10px; border-bottom: 1px solid #ddd;">{line.quantity}</td>'
            f'<td style="padding: 10px; border-bottom: 1px solid #ddd;">{line.amount_total:.2f}</td>'
            "</tr>"
            for line in receipt.lines
        )
        body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #4CAF50; text-align: center;">Payment Successful!</h1>
  <p>Thank you for your purchase! Your order has been confirmed.</p>
  <div style="background-color: #f9f9f9; padding: 15px; border-radius: 5px; margin: 20px 0;">
    <h2 style="margin-top: 0;">Order Details</h2>
    <p><strong>Order ID:</strong> {html.escape(receipt.session_id)}</p>
    <p><strong>Payment Status:</strong> Paid</p>
  </div>
  <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
    <thead><tr><th>Item</th><th>Quantity</th><th>Price</th></tr></thead>
    <tbody>{rows}</tbody>
    <tfoot><tr>
      <td colspan="2" style="padding: 10px; text-align: right; font-weight: bold;">Total:</td>
      <td style="padding: 10px; font-weight: bold;">{receipt.total_amount:.2f}</td>
    </tr></tfoot>
  </table>
</div>
"""
        message = EmailMessage()
        message["Subject"] = "Payment Successful - Order Confirmation"
        message["From"] = self._settings.email_user
        message["To"] = receipt.customer_email
        message.set_content(
            f"Thank you for your purchase! Order {receipt.session_id}, total {receipt.total_amount:.2f}."
        )
        message.add_alternative(body, subtype="html")
        return message

    async def notify_order_paid(self, receipt: OrderReceipt) -> None:
        if not receipt.customer_email:
            logger.info("email_skipped_no_recipient", session_id=receipt.session_id)
            return
        if not self.enabled:
            logger.warning("email_not_configured", session_id=receipt.session_id)
            return

        await self._send(self.render(receipt))
        logger.info("email_sent", session_id=receipt.session_id, to=receipt.customer_email)

    async def _send(self, message: EmailMessage) -> None:
        await aiosmtplib.send(
            message,
            hostname=self._settings.smtp_host,
            port=self._settings.smtp_port,
            username=self._settings.email_user,
            password=self._settings.email_password,
            use_tls=True,
            timeout=self._settings.smtp_timeout,
        )


class TelegramNotifier:
    """Broadcasts new orders to a Telegram channel via the Bot API."""

    channel = "telegram"

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._settings.telegram_bot_token and self._settings.telegram_chat_id)

    def render(self, receipt: OrderReceipt) -> str:
        currency = (receipt.currency or "").upper()
        lines = "\n".join(f"• {line.description} × {line.quantity}" for line in receipt.lines)
        return f"🎵 New order paid: {receipt.total_amount:.2f} {currency}\n{lines}".strip()

    async def notify_order_paid(self, receipt: OrderReceipt) -> None:
        if not self.enabled:
            return

        url = f"{TELEGRAM_API_URL}/bot{self._settings.telegram_bot_token}/sendMessage"
        payload = {"chat_id": self._settings.telegram_chat_id, "text": self.render(receipt)}

        if self._client is not None:
            await self._post(self._client, url, payload)
        else:
            async with httpx.AsyncClient(timeout=self._settings.telegram_timeout) as client:
                await self._post(client, url, payload)
        logger.info("telegram_sent", session_id=receipt.session_id)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict) -> None:
        response = await client.post(url, json=payload)
        response.raise_for_status()


class NotificationDeliveryError(Exception):
    """Raised by the Celery task when some channels did not deliver."""

    def __init__(self, session_id: str, channels: list[str]):
        self.session_id = session_id
        self.channels = channels
        super().__init__(f"Receipt for {session_id} not delivered via {', '.join(channels)}")


class CompositeNotifier:
    """Fans a receipt out to every sink; failures are logged, never raised."""

    channel = "composite"

    def __init__(self, sinks: list[NotificationSink]):
        self._sinks = sinks

    @property
    def channels(self) -> list[str]:
        return [sink.channel for sink in self._sinks]

    async def notify_order_paid(self, receipt: OrderReceipt) -> list[str]:
        """Deliver to every sink and return the channels that failed."""
        failed = []
        for sink in self._sinks:
            try:
                await sink.notify_order_paid(receipt)
            except Exception as e:
                failed.append(sink.channel)
                notifications_total.labels(channel=sink.channel, outcome="failed").inc()
                logger.error(
                    "notification_failed",
                    channel=sink.channel,
                    session_id=receipt.session_id,
                    error=str(e),
                    exc_info=True,
                )
            else:
                notifications_total.labels(channel=sink.channel, outcome="sent").inc()
                logger.info("notification_sent", channel=sink.channel, session_id=receipt.session_id)
        return failed


def build_notifier(settings: Settings, channels: list[str] | None = None) -> CompositeNotifier:
    """Email and Telegram sinks, optionally narrowed to ``channels``."""
    sinks = [EmailReceiptNotifier(settings), TelegramNotifier(settings)]
    if channels is not None:
        sinks = [sink for sink in sinks if sink.channel in channels]
    return CompositeNotifier(sinks)
