from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Stock not available').
    Subclasses pin the HTTP status the API layer answers with.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"

    def __init__(self, message, code=None, details=None):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)

    def as_payload(self):
        payload = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(BusinessLogicException):
    """
    User-correctable. Carries every field-level problem, not just the first.
    """
    default_code = "VALIDATION_FAILED"

    def __init__(self, details, message="Validation failed"):
        if isinstance(details, str):
            details = [details]
        super().__init__(message, details=list(details))


class ProductNotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(
            f"Product not found: {product_id}",
            details=[str(product_id)],
        )


class InsufficientStock(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, product, requested, available):
        self.product = product
        self.requested = requested
        self.available = available
        name = getattr(product, "name", product)
        super().__init__(
            f'Insufficient stock for "{name}". '
            f"Available: {available}, Requested: {requested}",
            details=[str(getattr(product, "pk", product))],
        )


class OrderNotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidTransition(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_TRANSITION"

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}.")


class PersistenceFailed(BusinessLogicException):
    """
    Infrastructure-level, retryable.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "ORDER_CREATION_FAILED"

    def __init__(self, message="Failed to create order. Please try again."):
        super().__init__(message)


class RequestTimeout(BusinessLogicException):
    """
    The database cancelled the statement. Safe to retry with the same order token.
    """
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_code = "REQUEST_TIMEOUT"

    def __init__(self, message="The request timed out. Please try again."):
        super().__init__(message)


def custom_exception_handler(exc, context):
    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if isinstance(exc, BusinessLogicException):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}", exc_info=exc.__cause__ or exc)
        return Response(exc.as_payload(), status=exc.status_code)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"success": False, "error": "Internal Server Error", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return response
