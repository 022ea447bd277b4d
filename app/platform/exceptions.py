from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.logger import get_logger
from app.platform.response import error_response

logger = get_logger(__name__)


class AuditError(Exception):
    """
    Base class for errors raised inside an audit job.

    `reason` is the machine readable code surfaced on the failed outcome,
    `detail` the human readable explanation.
    """

    reason: str = "audit_error"

    def __init__(self, detail: str, reason: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if reason:
            self.reason = reason


class CrawlFetchError(AuditError):
    reason = "fetch_failed"


class InferenceError(AuditError):
    reason = "inference_failed"


class MalformedResponseError(AuditError):
    reason = "malformed_response"


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(str(exc.detail) or "Error", exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(
            "Validation failed",
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            errors=exc.errors(),
        )

    @app.exception_handler(AuditError)
    async def audit_exception_handler(request: Request, exc: AuditError):
        # Normally converted into an outcome by the dispatcher; this only
        # catches errors raised outside a job.
        logger.error(f"Audit error outside dispatcher ({exc.reason}): {exc.detail}")
        return error_response(exc.detail, status.HTTP_502_BAD_GATEWAY, reason=exc.reason)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return error_response("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)
