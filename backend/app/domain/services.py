from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from ..models import Booking, BookingStatus, Package, PackageStatus
from .errors import ReasonCode
from .status import is_active


@dataclass(frozen=True)
class PackageSnapshot:
    id: int
    name: str
    capacity: int
    price: int
    duration: int
    status: PackageStatus

    @classmethod
    def from_model(cls, package: Package) -> "PackageSnapshot":
        return cls(
            id=package.id,
            name=package.name,
            capacity=package.capacity,
            price=package.price,
            duration=package.duration,
            status=package.status,
        )


@dataclass(frozen=True)
class ConflictingBooking:
    id: int
    check_in: date
    check_out: date
    confirmation_code: str
    status: BookingStatus

    @classmethod
    def from_model(cls, booking: Booking) -> "ConflictingBooking":
        return cls(
            id=booking.id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            confirmation_code=booking.confirmation_code,
            status=booking.status,
        )


@dataclass(frozen=True)
class Rejection:
    reason: ReasonCode
    message: str


MISSING_DATES = Rejection(ReasonCode.INVALID_DATES, "check-in and check-out dates are required")
PACKAGE_MISSING = Rejection(ReasonCode.PACKAGE_NOT_FOUND, "package not found")


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open [start, end) intersection; touching ranges do not overlap."""
    return a_start < b_end and b_start < a_end


def stay_length_days(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def stay_nights(check_in: date, check_out: date) -> list[date]:
    return [check_in + timedelta(days=offset) for offset in range(stay_length_days(check_in, check_out))]


def check_dates(check_in: date, check_out: date, *, today: date) -> Optional[Rejection]:
    if check_in >= check_out:
        return Rejection(ReasonCode.INVALID_DATES, "check-in date must be earlier than check-out date")
    if check_in < today:
        return Rejection(ReasonCode.PAST_DATE, "check-in date cannot be in the past")
    return None


def check_package(package: Optional[PackageSnapshot], *, party_size: int) -> Optional[Rejection]:
    if package is None:
        return PACKAGE_MISSING
    if package.status != PackageStatus.ACTIVE:
        return Rejection(ReasonCode.PACKAGE_UNAVAILABLE, "package is not currently bookable")
    if party_size > package.capacity:
        return Rejection(
            ReasonCode.CAPACITY_EXCEEDED,
            f"party size exceeds package capacity (max {package.capacity})",
        )
    return None


def find_conflicts(
    bookings: Iterable[Booking],
    *,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> list[ConflictingBooking]:
    """Active bookings from `bookings` whose stay intersects [check_in, check_out)."""
    return [
        ConflictingBooking.from_model(booking)
        for booking in bookings
        if booking.id != exclude_booking_id
        and is_active(booking.status)
        and intervals_overlap(booking.check_in, booking.check_out, check_in, check_out)
    ]
