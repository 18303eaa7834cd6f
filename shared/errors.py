"""
Error taxonomy for the order subsystem.

Every failure a caller can see is an OrderError carrying a stable ``kind`` and a
human readable message. Internal causes (constraint names, driver errors) are
logged by the handlers below and never rendered into a response.
"""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger(__name__)

VALIDATION = "validation"
CONFLICT = "conflict"
NOT_FOUND = "not_found"
INTEGRITY = "integrity"
UPSTREAM = "upstream"


class OrderError(Exception):
    kind = "order_error"
    category = VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None, details: list[dict] | None = None):
        self.message = message or self.default_message
        self.details = details or []
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.kind, "detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


# --- Validation ---

class AddressInvalid(OrderError):
    kind = "address_invalid"
    default_message = "Invalid address"


class CartEmpty(OrderError):
    kind = "cart_empty"
    default_message = "Cart is empty"


class VariantInactive(OrderError):
    kind = "variant_inactive"
    default_message = "Product is no longer available"


class PriceUnavailable(OrderError):
    kind = "price_unavailable"
    default_message = "Price not available in the requested currency"


class MalformedWebhook(OrderError):
    kind = "malformed_webhook"
    default_message = "Invalid webhook payload"


class InvalidPaymentAmount(OrderError):
    kind = "invalid_payment_amount"
    default_message = "Payment amount must be greater than zero"


class CurrencyMismatch(OrderError):
    kind = "currency_mismatch"
    default_message = "Payment currency does not match the order currency"


# --- NotFound ---

class NotFound(OrderError):
    kind = "not_found"
    category = NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Order not found"


class VariantNotFound(NotFound):
    kind = "variant_not_found"
    default_message = "Product variant not found"


# --- Conflict ---

class InsufficientStock(OrderError):
    kind = "insufficient_stock"
    category = CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_message = "Insufficient stock"


class InvalidTransition(OrderError):
    kind = "invalid_transition"
    category = CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_message = "Status transition not allowed"


class NotCancellable(OrderError):
    kind = "not_cancellable"
    category = CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_message = "Order cannot be cancelled at this stage"


class DuplicateCashPayment(OrderError):
    kind = "duplicate_cash_payment"
    category = CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_message = "Cash payment already recorded for this order"


# --- Integrity ---

class InvalidSignature(OrderError):
    kind = "invalid_signature"
    category = INTEGRITY
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid webhook signature"


# --- Upstream ---

class PaymentGatewayError(OrderError):
    kind = "payment_gateway_error"
    category = UPSTREAM
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider is unavailable"


async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    log = logger.warning if exc.category != UPSTREAM else logger.error
    log(
        "request_failed",
        path=request.url.path,
        kind=exc.kind,
        category=exc.category,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database_error", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "detail": "Internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderError, order_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
