"""
Background job channels for work that must not gate an HTTP response.

``BackgroundJobQueue`` is a bounded in-process queue drained by a few
worker tasks started in the app lifespan. ``CeleryNotificationChannel``
hands the same work to a Celery worker instead. Both only ever log job
failures; callers never see them.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from ..core.metrics import background_jobs_total
from .notifications import NotificationSink, OrderReceipt

logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[None]]


class BackgroundJobQueue:
    def __init__(self, maxsize: int = 100, workers: int = 2, drain_timeout: float = 10.0):
        self._queue: asyncio.Queue[tuple[str, Job]] = asyncio.Queue(maxsize=maxsize)
        self._worker_count = workers
        self._drain_timeout = drain_timeout
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"background-job-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("job_queue_started", workers=self._worker_count, maxsize=self._queue.maxsize)

    def submit(self, name: str, job: Job) -> bool:
        """Enqueue without waiting. Returns False when the queue is full."""
        try:
            self._queue.put_nowait((name, job))
        except asyncio.QueueFull:
            background_jobs_total.labels(outcome="dropped").inc()
            logger.error("job_dropped", job=name, reason="queue_full")
            return False

        background_jobs_total.labels(outcome="queued").inc()
        return True

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending jobs (bounded by drain_timeout), then stop the workers."""
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("job_queue_drain_timeout", pending=self._queue.qsize())

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("job_queue_stopped")

    async def _worker(self, index: int) -> None:
        while True:
            name, job = await self._queue.get()
            try:
                await job()
            except Exception as e:
                background_jobs_total.labels(outcome="failed").inc()
                logger.error("job_failed", job=name, worker=index, error=str(e), exc_info=True)
            else:
                background_jobs_total.labels(outcome="succeeded").inc()
            finally:
                self._queue.task_done()


class NotificationChannel(Protocol):
    async def submit_order_paid(self, receipt: OrderReceipt) -> bool: ...


class InProcessNotificationChannel:
    """Runs the notifier on the in-process job queue."""

    def __init__(self, queue: BackgroundJobQueue, notifier: NotificationSink):
        self._queue = queue
        self._notifier = notifier

    async def submit_order_paid(self, receipt: OrderReceipt) -> bool:
        return self._queue.submit(
            f"order_paid:{receipt.session_id}",
            lambda: self._notifier.notify_order_paid(receipt),
        )


class CeleryNotificationChannel:
    """Publishes the receipt to the ``notifications`` Celery queue."""

    async def submit_order_paid(self, receipt: OrderReceipt) -> bool:
        from ..core.celery_app import NOTIFICATIONS_QUEUE
        from .tasks import send_order_receipt_task

        try:
            # Publishing talks to the broker synchronously
            await asyncio.to_thread(
                send_order_receipt_task.apply_async,
                args=[receipt.to_dict()],
                queue=NOTIFICATIONS_QUEUE,
            )
        except Exception as e:
            background_jobs_total.labels(outcome="dropped").inc()
            logger.error("job_publish_failed", session_id=receipt.session_id, error=str(e))
            return False

        background_jobs_total.labels(outcome="queued").inc()
        return True
