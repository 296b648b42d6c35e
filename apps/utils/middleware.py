import logging
from django.utils.deprecation import MiddlewareMixin
from django.http import JsonResponse

from .exceptions import KIND_TO_STATUS, BusinessLogicException

logger = logging.getLogger(__name__)


class GlobalExceptionMiddleware(MiddlewareMixin):
    """
    Last line of defense for non-DRF views under /api/.

    Business errors keep their envelope and status; anything else is a 500.
    """
    def process_exception(self, request, exception):
        if not request.path.startswith('/api/'):
            return None  # Let Django's default 500 handler work for HTML

        if isinstance(exception, BusinessLogicException):
            logger.info(f"Business rule rejected request: {exception.code} ({exception.message})")
            return JsonResponse(exception.as_dict(), status=KIND_TO_STATUS[exception.kind])

        logger.exception(f"Unhandled Middleware Exception: {str(exception)}")
        return JsonResponse(
            {"error": "Internal System Error", "code": "server_error"},
            status=500
        )
