from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from slowapi.errors import RateLimitExceeded
import structlog

from .api.order_routes import router as order_router
from .api.review_routes import router as review_router
from .api.stripe_routes import router as stripe_router
from .api.system_log_routes import router as system_log_router
from .core.config import NotificationBackend, Settings, get_settings
from .core.database import build_engine, build_session_factory
from .core.errors import register_exception_handlers
from .core.logging import setup_logging
from .security.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .security.rate_limiter import limiter, rate_limit_exceeded_handler
from .services.checkout import CheckoutService
from .services.gateway import PaymentGateway, StripeGateway
from .services.jobs import BackgroundJobQueue, CeleryNotificationChannel, InProcessNotificationChannel
from .services.notifications import NotificationSink, build_notifier
from .services.orders import OrderService
from .services.reviews import ReviewService
from .services.system_logs import SystemLogService
from .services.webhooks import WebhookProcessor

settings = get_settings()
logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings = settings,
    gateway: PaymentGateway | None = None,
    notifier: NotificationSink | None = None,
) -> FastAPI:
    """Build the application.

    ``gateway`` and ``notifier`` default to the Stripe client and the
    email/Telegram sinks built from settings; tests pass their own.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()

        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
        payment_gateway = gateway or StripeGateway(
            settings.stripe_secret_key,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )

        job_queue = None
        if settings.notification_backend == NotificationBackend.CELERY:
            notifications = CeleryNotificationChannel()
        else:
            job_queue = BackgroundJobQueue(
                maxsize=settings.notification_queue_size,
                workers=settings.notification_workers,
                drain_timeout=settings.notification_drain_timeout,
            )
            job_queue.start()
            notifications = InProcessNotificationChannel(job_queue, notifier or build_notifier(settings))

        order_service = OrderService(session_factory)
        system_log_service = SystemLogService(session_factory)
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.job_queue = job_queue
        app.state.order_service = order_service
        app.state.system_log_service = system_log_service
        app.state.review_service = ReviewService(session_factory, system_logs=system_log_service)
        app.state.checkout_service = CheckoutService(session_factory, payment_gateway, settings)
        app.state.webhook_processor = WebhookProcessor(
            payment_gateway, order_service, notifications, system_logs=system_log_service
        )

        logger.info(
            "app_started",
            environment=settings.environment.value,
            notification_backend=settings.notification_backend.value,
        )

        yield

        if job_queue is not None:
            await job_queue.stop()
        await engine.dispose()
        logger.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Vinyl marketplace API: checkout, payment webhooks, orders and reviews",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    register_exception_handlers(app)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )

    app.mount("/metrics", make_asgi_app())

    app.include_router(stripe_router, prefix="/api/v1")
    app.include_router(review_router, prefix="/api/v1")
    app.include_router(order_router, prefix="/api/v1")
    app.include_router(system_log_router, prefix="/api/v1")

    @app.get("/", tags=["health"])
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        job_queue = getattr(app.state, "job_queue", None)
        return {
            "status": "healthy",
            "notification_backend": settings.notification_backend.value,
            "pending_jobs": job_queue.pending if job_queue is not None else None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
