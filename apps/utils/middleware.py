import logging
import time
from django.utils.deprecation import MiddlewareMixin
from django.http import JsonResponse

logger = logging.getLogger("apps.requests")


class RequestLogMiddleware(MiddlewareMixin):
    """
    One log line per API request with status and latency.
    """
    def process_request(self, request):
        request._started_at = time.monotonic()

    def process_response(self, request, response):
        started = getattr(request, "_started_at", None)
        if started is not None and request.path.startswith('/api/'):
            elapsed_ms = (time.monotonic() - started) * 1000
            user = getattr(request, "user", None)
            logger.info(
                f"{request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
                extra={"user_id": getattr(user, "pk", None)},
            )
        return response


class GlobalExceptionMiddleware(MiddlewareMixin):
    """
    Last line of defense for non-DRF views.
    """
    def process_exception(self, request, exception):
        logger.exception(f"Unhandled Middleware Exception: {str(exception)}")
        if request.path.startswith('/api/'):
            return JsonResponse(
                {"success": False, "error": "Internal System Error", "code": "server_error"},
                status=500
            )
        return None  # Let Django's default 500 handler work for HTML
