"""
Error handlers for the FastAPI application.

Every failure that reaches the HTTP layer is returned in the same envelope as
successful responses: {"status": "error", "data": null, "error": ..., "error_code": ...}.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from typing import Dict, Any, Optional

from app.core.exceptions import TravlrHubException, ErrorCode

logger = logging.getLogger(__name__)


class ErrorHandler:
    """
    Converts exceptions to enveloped JSON responses and counts them per code.
    """

    def __init__(self):
        self.error_counts: Dict[str, int] = {}

    async def handle_travlrhub_exception(
        self,
        request: Request,
        exc: TravlrHubException
    ) -> JSONResponse:
        request_id = getattr(request.state, 'request_id', 'unknown')
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{type(exc).__name__} in request {request_id}: {exc.message}",
            extra={
                'request_id': request_id,
                'error_code': exc.error_code.value,
                'status_code': exc.status_code,
                'details': exc.details,
                'request_path': request.url.path,
            }
        )
        self._track_error(exc.error_code.value)
        return self._create_error_response(
            error_code=exc.error_code.value,
            message=exc.message,
            status_code=exc.status_code,
            details=exc.details,
        )

    async def handle_validation_error(
        self,
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
        self._track_error(ErrorCode.VALIDATION_ERROR.value)
        return self._create_error_response(
            error_code=ErrorCode.VALIDATION_ERROR.value,
            message=message,
            status_code=422,
            details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
        )

    async def handle_http_exception(
        self,
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        return self._create_error_response(
            error_code=str(exc.detail) if exc.status_code < 500 else ErrorCode.INTERNAL_SERVER_ERROR.value,
            message=str(exc.detail),
            status_code=exc.status_code,
        )

    async def handle_unexpected_error(
        self,
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"Unhandled exception in request {request_id}: {exc}",
            exc_info=exc,
            extra={'request_id': request_id, 'request_path': request.url.path},
        )
        self._track_error(ErrorCode.INTERNAL_SERVER_ERROR.value)
        return self._create_error_response(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR.value,
            message="Internal server error",
            status_code=500,
        )

    def _track_error(self, error_code: str) -> None:
        self.error_counts[error_code] = self.error_counts.get(error_code, 0) + 1

    def get_error_statistics(self) -> Dict[str, Any]:
        """Error counts per code since startup, reported by /health."""
        return {
            "error_counts": dict(self.error_counts),
            "total_errors": sum(self.error_counts.values()),
        }

    def _create_error_response(
        self,
        error_code: str,
        message: str,
        status_code: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        content: Dict[str, Any] = {
            "status": "error",
            "data": None,
            "error": message,
            "error_code": error_code,
        }
        if details:
            content["details"] = details
        return JSONResponse(status_code=status_code, content=content)


error_handler = ErrorHandler()


def setup_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(TravlrHubException, error_handler.handle_travlrhub_exception)
    app.add_exception_handler(RequestValidationError, error_handler.handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, error_handler.handle_http_exception)
    app.add_exception_handler(Exception, error_handler.handle_unexpected_error)
