"""Booking error taxonomy and machine-readable reason codes."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .services import ConflictingBooking


class ReasonCode(StrEnum):
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_DATES = "INVALID_DATES"
    PAST_DATE = "PAST_DATE"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    PACKAGE_UNAVAILABLE = "PACKAGE_UNAVAILABLE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DATE_CONFLICT = "DATE_CONFLICT"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    CANCEL_NOT_ALLOWED = "CANCEL_NOT_ALLOWED"
    FORBIDDEN = "FORBIDDEN"
    CODE_SPACE_EXHAUSTED = "CODE_SPACE_EXHAUSTED"
    CODE_COLLISION = "CODE_COLLISION"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class BookingError(Exception):
    """Base error with a reason code and a user-safe message."""

    default_reason = ReasonCode.INVALID_REQUEST

    def __init__(self, message: str, *, reason: ReasonCode | None = None) -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason
        self.message = message

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.message}"


class ValidationError(BookingError):
    """Malformed or out-of-range input."""


class NotFoundError(BookingError):
    default_reason = ReasonCode.PACKAGE_NOT_FOUND


class ConflictError(BookingError):
    """Business-rule rejection (date conflict, capacity, package unavailable)."""

    default_reason = ReasonCode.DATE_CONFLICT

    def __init__(
        self,
        message: str,
        *,
        reason: ReasonCode | None = None,
        conflicts: Sequence["ConflictingBooking"] = (),
    ) -> None:
        super().__init__(message, reason=reason)
        self.conflicts = list(conflicts)


class IllegalTransitionError(BookingError):
    default_reason = ReasonCode.ILLEGAL_TRANSITION

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"cannot change booking status from {current} to {requested}")
        self.current = current
        self.requested = requested


class VersionConflictError(BookingError):
    default_reason = ReasonCode.VERSION_CONFLICT


class CancelNotAllowedError(BookingError):
    default_reason = ReasonCode.CANCEL_NOT_ALLOWED


class ExhaustedRetriesError(BookingError):
    default_reason = ReasonCode.CODE_SPACE_EXHAUSTED

    def __init__(self, attempts: int) -> None:
        super().__init__(f"no unique confirmation code after {attempts} attempts")
        self.attempts = attempts


class DuplicateConfirmationCodeError(BookingError):
    """The store already holds a booking with this confirmation code."""

    default_reason = ReasonCode.CODE_COLLISION

    def __init__(self, code: str) -> None:
        super().__init__(f"confirmation code {code} is already taken")
        self.code = code


class StorageError(BookingError):
    """Unexpected repository/storage fault. Not retried by the booking core."""

    default_reason = ReasonCode.SYSTEM_ERROR


class PermissionDeniedError(BookingError):
    default_reason = ReasonCode.FORBIDDEN
