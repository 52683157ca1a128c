"""Celery tasks for the notification channel."""
import asyncio

from ..core.celery_app import NOTIFICATIONS_QUEUE, NotificationTask, celery_app
from ..core.config import get_settings
from .notifications import NotificationDeliveryError, OrderReceipt, build_notifier


def _run_async(coro):
    """Run an async coroutine from a sync Celery task using a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="vinylmarket.tasks.notifications.send_order_receipt",
    queue=NOTIFICATIONS_QUEUE,
)
def send_order_receipt_task(self, receipt: dict, channels: list[str] | None = None) -> dict:
    """Send the paid-order receipt through every configured sink.

    A retry only goes to the channels that failed, so a customer is not
    mailed twice because Telegram was down.
    """
    order_receipt = OrderReceipt.from_dict(receipt)
    notifier = build_notifier(get_settings(), channels=channels)
    failed = _run_async(notifier.notify_order_paid(order_receipt))
    if failed:
        raise self.retry(
            exc=NotificationDeliveryError(order_receipt.session_id, failed),
            args=[receipt],
            kwargs={"channels": failed},
            countdown=self.backoff(),
        )
    return {"session_id": order_receipt.session_id, "channels": notifier.channels}
