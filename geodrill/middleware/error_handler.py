"""
Global error handling middleware.
"""
import logging
from typing import Callable, Dict, Tuple, Type

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from geodrill.infrastructure.geo_api_client import GeoAPIError
from geodrill.services.domain.aggregation import AggregationError
from geodrill.services.domain.navigation import NavigationError


logger = logging.getLogger(__name__)

# Checked in order, so subclasses must come before their bases
ERROR_RESPONSES: Dict[Type[Exception], Tuple[int, str, int]] = {
    GeoAPIError: (status.HTTP_502_BAD_GATEWAY, "Geography API error", logging.ERROR),
    AggregationError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Aggregation error", logging.ERROR),
    NavigationError: (status.HTTP_404_NOT_FOUND, "Invalid navigation", logging.WARNING),
    ValueError: (status.HTTP_400_BAD_REQUEST, "Invalid request", logging.WARNING),
}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Viewer transitions absorb fetch failures themselves; this catches what
    escapes them (startup data errors, misuse) and answers with a JSON body
    of the form {"error": ..., "detail": ...}.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        try:
            return await call_next(request)
        except Exception as e:
            return self._error_response(request, e)

    def _error_response(self, request: Request, error: Exception) -> JSONResponse:
        context = {"path": request.url.path, "method": request.method}

        for error_type, (status_code, title, level) in ERROR_RESPONSES.items():
            if isinstance(error, error_type):
                detail = getattr(error, "message", None) or str(error)
                logger.log(level, f"{title} on {request.method} {request.url.path}: {detail}", extra=context)
                return JSONResponse(
                    status_code=status_code,
                    content={"error": title, "detail": detail},
                )

        logger.exception(f"Unhandled exception: {str(error)}", extra=context)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred",
            }
        )
