"""Maps domain errors to HTTP responses."""

from typing import Any

import structlog
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from events.domain.errors import DomainError, ErrorCode

logger = structlog.get_logger(__name__)

STATUS_BY_CODE = {
    ErrorCode.EVENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.REGISTRATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TICKET_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_EVENT_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.IMMUTABLE: status.HTTP_409_CONFLICT,
    ErrorCode.POLICY_VIOLATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.DUPLICATE_REGISTRATION: status.HTTP_409_CONFLICT,
    ErrorCode.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.OUT_OF_STOCK: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_USED: status.HTTP_409_CONFLICT,
    ErrorCode.EXPIRED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.WRONG_EVENT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.TICKET_CANCELLED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

INTERNAL_CODES = (ErrorCode.STORAGE_ERROR, ErrorCode.CASCADE_FAILED)


def domain_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """DRF exception handler that understands DomainError.

    Internal failures are logged and answered with a generic 500 body.
    """
    if not isinstance(exc, DomainError):
        return exception_handler(exc, context)

    if exc.code in INTERNAL_CODES:
        logger.error("internal_error", code=exc.code.value, error=str(exc))
        return Response(
            {"code": exc.code.value, "message": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    body: dict[str, Any] = {"code": exc.code.value, "message": exc.message}
    body.update({key: value for key, value in exc.extra.items() if value is not None})
    return Response(body, status=STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST))
