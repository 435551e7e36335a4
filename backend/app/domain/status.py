from types import MappingProxyType
from typing import Mapping

from ..models import BookingStatus
from .errors import IllegalTransitionError

INITIAL_STATUS = BookingStatus.PENDING

# Statuses that occupy the package for their [check_in, check_out) range.
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)

ALLOWED_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = MappingProxyType(
    {
        BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
        BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
        BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
        BookingStatus.CHECKED_OUT: frozenset({BookingStatus.REFUNDED}),
        BookingStatus.CANCELLED: frozenset({BookingStatus.REFUNDED}),
        BookingStatus.REFUNDED: frozenset(),
    }
)

STATUS_LABELS: Mapping[BookingStatus, str] = MappingProxyType(
    {
        BookingStatus.PENDING: "Awaiting confirmation",
        BookingStatus.CONFIRMED: "Confirmed",
        BookingStatus.CHECKED_IN: "Checked in",
        BookingStatus.CHECKED_OUT: "Checked out",
        BookingStatus.CANCELLED: "Cancelled",
        BookingStatus.REFUNDED: "Refunded",
    }
)

if set(ALLOWED_TRANSITIONS) != set(BookingStatus):  # pragma: no cover
    raise RuntimeError("transition table must cover every BookingStatus")


def can_transition(current: BookingStatus | str, requested: BookingStatus | str) -> bool:
    """Single-step legality check. Unknown status strings are never legal."""
    try:
        current_status = BookingStatus(current)
        requested_status = BookingStatus(requested)
    except ValueError:
        return False
    return requested_status in ALLOWED_TRANSITIONS[current_status]


def ensure_transition(current: BookingStatus, requested: BookingStatus) -> None:
    if not can_transition(current, requested):
        raise IllegalTransitionError(str(current), str(requested))


def is_active(status: BookingStatus) -> bool:
    return status in ACTIVE_STATUSES


def status_label(status: BookingStatus) -> str:
    return STATUS_LABELS[status]
