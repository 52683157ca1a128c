"""FastAPI dependencies resolving the services built in the app lifespan."""

from fastapi import Request

from ..services.checkout import CheckoutService
from ..services.orders import OrderService
from ..services.reviews import ReviewService
from ..services.system_logs import SystemLogService
from ..services.webhooks import WebhookProcessor


def get_checkout_service(request: Request) -> CheckoutService:
    return request.app.state.checkout_service


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review_service


def get_system_log_service(request: Request) -> SystemLogService:
    return request.app.state.system_log_service
