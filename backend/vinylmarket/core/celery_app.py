"""Celery application for the ``celery`` notification backend.

Only order notifications run here; the API publishes to the
``notifications`` queue and never waits for a result.
"""

from celery import Celery, Task
from celery.utils.time import get_exponential_backoff_interval
from kombu import Exchange, Queue
import structlog

from .config import get_settings

settings = get_settings()
logger = structlog.get_logger(__name__)

NOTIFICATIONS_QUEUE = "notifications"

market_exchange = Exchange("vinylmarket", type="direct")

celery_app = Celery(
    "vinylmarket",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["vinylmarket.services.tasks"],
)

celery_app.conf.update(
    task_queues=(
        Queue(NOTIFICATIONS_QUEUE, exchange=market_exchange, routing_key=NOTIFICATIONS_QUEUE),
    ),
    task_default_queue=NOTIFICATIONS_QUEUE,
    task_default_exchange="vinylmarket",
    task_default_routing_key=NOTIFICATIONS_QUEUE,
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    # A receipt must survive a worker crash mid-send
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_publish_retry_policy={
        "max_retries": 3,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 2,
    },
    broker_connection_retry_on_startup=True,
)


class NotificationTask(Task):
    """Retries failed channels with exponential backoff; every terminal outcome is logged."""

    max_retries = 5
    retry_backoff = 2
    retry_backoff_max = 300
    retry_jitter = True

    def backoff(self) -> int:
        """Countdown in seconds before the next retry of the current request."""
        return get_exponential_backoff_interval(
            factor=self.retry_backoff,
            retries=self.request.retries,
            maximum=self.retry_backoff_max,
            full_jitter=self.retry_jitter,
        )

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning("notification_task_retry", task=self.name, task_id=task_id, error=str(exc))

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error("notification_task_failed", task=self.name, task_id=task_id, error=str(exc))

    def on_success(self, retval, task_id, args, kwargs):
        logger.info("notification_task_succeeded", task=self.name, task_id=task_id, result=retval)
