from enum import Enum
import logging

from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    CONTENTION = "CONTENTION"


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Stock not available').
    Every subclass declares the kind of failure so callers can decide
    whether a retry makes sense.
    """
    kind = ErrorKind.CONFLICT
    default_code = "business_error"
    retryable = False

    def __init__(self, message, code=None, **details):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)

    def as_dict(self):
        return {"error": self.message, "code": self.code, "kind": self.kind.value, **self.details}


# --- Validation (caller error, rejected before any mutation) ---

class ValidationFailed(BusinessLogicException):
    kind = ErrorKind.VALIDATION
    default_code = "validation_error"


class EmptyCart(ValidationFailed):
    default_code = "empty_cart"

    def __init__(self):
        super().__init__("Cart is empty.")


class InvalidCardDetails(ValidationFailed):
    default_code = "invalid_card_details"


# --- Conflict (state error) ---

class InsufficientStock(BusinessLogicException):
    default_code = "insufficient_stock"

    def __init__(self, product_name, requested, available):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name}. "
            f"Requested: {requested}, Available: {available}",
            product_name=product_name,
            requested=requested,
            available=available,
        )


class ProductUnavailable(BusinessLogicException):
    default_code = "product_unavailable"


class IllegalStateError(BusinessLogicException):
    default_code = "illegal_state"


class PaymentMethodNotAllowed(IllegalStateError):
    default_code = "payment_method_not_allowed"


# --- Not found / authorization (collapsed into one signal) ---

class NotFound(BusinessLogicException):
    kind = ErrorKind.NOT_FOUND
    default_code = "not_found"


class OrderNotFound(NotFound):
    default_code = "order_not_found"

    def __init__(self, order_id):
        super().__init__(f"Order not found with id: {order_id}")


class ProductNotFound(NotFound):
    default_code = "product_not_found"

    def __init__(self, product_id):
        super().__init__(f"Product not found with id: {product_id}")


class AdminRequired(NotFound):
    default_code = "not_found"

    def __init__(self):
        super().__init__("Not found.")


# --- Contention (transient) ---

class ContentionError(BusinessLogicException):
    kind = ErrorKind.CONTENTION
    default_code = "contention"
    retryable = True


KIND_TO_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONTENTION: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def custom_exception_handler(exc, context):
    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if isinstance(exc, BusinessLogicException):
        logger.info(f"Business rule rejected request: {exc.code} ({exc.message})")
        response = Response(exc.as_dict(), status=KIND_TO_STATUS[exc.kind])
        if exc.retryable:
            response["Retry-After"] = "1"
        return response

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"error": "Internal Server Error", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return response
