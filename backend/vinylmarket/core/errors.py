"""Domain errors and their HTTP rendering.

Services raise these; the exception handlers registered in ``main`` turn
them into ``{"error", "message", "details"}`` bodies.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class MarketError(Exception):
    """Base class for errors with a client-facing message."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: list | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundError(MarketError):
    status_code = 404
    code = "not_found"


class ConflictError(MarketError):
    status_code = 409
    code = "conflict"


class DuplicateReviewError(ConflictError):
    # Reported to clients as a bad request, like any other rejected submission
    status_code = 400
    code = "duplicate_review"


class DuplicateOrderError(ConflictError):
    code = "duplicate_order"

    def __init__(self, stripe_session_id: str):
        super().__init__(f"Order for session {stripe_session_id} already exists")
        self.stripe_session_id = stripe_session_id


class ForbiddenError(MarketError):
    status_code = 403
    code = "forbidden"


class EmptyCartError(MarketError):
    status_code = 400
    code = "empty_cart"


class WebhookSignatureError(MarketError):
    status_code = 400
    code = "invalid_signature"


class WebhookPayloadError(MarketError):
    status_code = 400
    code = "invalid_payload"


class WebhookProcessingError(MarketError):
    # 400 so that the gateway schedules a redelivery
    status_code = 400
    code = "webhook_processing_failed"


class GatewayError(MarketError):
    status_code = 500
    code = "gateway_error"


def error_body(code: str, message: str, details: list | None = None) -> dict:
    return {"error": code, "message": message, "details": details or []}


async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        path=request.url.path,
        error=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("validation_error", "Request validation failed", details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketError, market_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
