import logging

from fastapi import HTTPException, status

from ..domain.errors import (
    BookingError,
    CancelNotAllowedError,
    ConflictError,
    DuplicateConfirmationCodeError,
    ExhaustedRetriesError,
    IllegalTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
    VersionConflictError,
)
from ..schemas import ConflictRead, ErrorDetail

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[BookingError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (CancelNotAllowedError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (IllegalTransitionError, status.HTTP_409_CONFLICT),
    (VersionConflictError, status.HTTP_409_CONFLICT),
    (DuplicateConfirmationCodeError, status.HTTP_409_CONFLICT),
    (ExhaustedRetriesError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_code_for(exc: BookingError) -> int:
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


def to_http_exception(exc: BookingError) -> HTTPException:
    """HTTP error carrying the reason code, message and any conflicting bookings."""
    code = status_code_for(exc)
    if code >= 500:
        logger.error("booking request failed: %s", exc)
    detail = ErrorDetail(reason=exc.reason.value, message=exc.message)
    if isinstance(exc, ConflictError) and exc.conflicts:
        detail.conflicts = [ConflictRead.from_domain(c) for c in exc.conflicts]
    return HTTPException(status_code=code, detail=detail.model_dump(mode="json", exclude_none=True))
