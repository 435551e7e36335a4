from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from ..domain.errors import ConflictError, NotFoundError, ReasonCode, ValidationError
from ..domain.pricing import PriceBreakdown, compute_price
from ..domain.repositories import BookingRepository, PackageRepository
from ..domain.services import (
    MISSING_DATES,
    PACKAGE_MISSING,
    ConflictingBooking,
    PackageSnapshot,
    Rejection,
    check_dates,
    check_package,
    find_conflicts,
    stay_length_days,
    stay_nights,
)
from ..domain.status import ACTIVE_STATUSES
from ..models import BookingStatus, Package
from ..utils.time import business_today


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    reason: Optional[ReasonCode] = None
    message: str = ""
    conflicts: list[ConflictingBooking] = field(default_factory=list)
    package: Optional[PackageSnapshot] = None
    days: Optional[int] = None
    price: Optional[PriceBreakdown] = None

    @classmethod
    def rejected(
        cls,
        rejection: Rejection,
        *,
        conflicts: Optional[list[ConflictingBooking]] = None,
        package: Optional[PackageSnapshot] = None,
    ) -> "AvailabilityResult":
        return cls(
            available=False,
            reason=rejection.reason,
            message=rejection.message,
            conflicts=conflicts or [],
            package=package,
        )


@dataclass(frozen=True)
class OccupiedRange:
    check_in: date
    check_out: date
    status: BookingStatus


@dataclass(frozen=True)
class Occupancy:
    package: PackageSnapshot
    start: date
    end: date
    occupied_dates: list[date]
    bookings: list[OccupiedRange]


async def check_availability(
    package_repo: PackageRepository,
    booking_repo: BookingRepository,
    *,
    package_id: int,
    check_in: Optional[date],
    check_out: Optional[date],
    party_size: int,
    exclude_booking_id: Optional[int] = None,
    today: Optional[date] = None,
    package: Optional[Package] = None,
) -> AvailabilityResult:
    """
    Decide whether a stay can be accepted. Business rejections come back as
    an unavailable result; only storage faults raise.

    `package` may be passed by callers that already hold the (locked) row.
    """
    if check_in is None or check_out is None:
        return AvailabilityResult.rejected(MISSING_DATES)
    rejection = check_dates(check_in, check_out, today=today or business_today())
    if rejection is not None:
        return AvailabilityResult.rejected(rejection)

    if package is None:
        package = await package_repo.get(package_id)
    if package is None:
        return AvailabilityResult.rejected(PACKAGE_MISSING)
    snapshot = PackageSnapshot.from_model(package)
    rejection = check_package(snapshot, party_size=party_size)
    if rejection is not None:
        return AvailabilityResult.rejected(rejection, package=snapshot)

    candidates = await booking_repo.find_overlapping(
        package_id,
        check_in,
        check_out,
        ACTIVE_STATUSES,
        exclude_booking_id,
    )
    conflicts = find_conflicts(
        candidates,
        check_in=check_in,
        check_out=check_out,
        exclude_booking_id=exclude_booking_id,
    )
    if conflicts:
        return AvailabilityResult.rejected(
            Rejection(ReasonCode.DATE_CONFLICT, "selected dates conflict with an existing booking"),
            conflicts=conflicts,
            package=snapshot,
        )

    days = stay_length_days(check_in, check_out)
    return AvailabilityResult(
        available=True,
        message="package is available",
        package=snapshot,
        days=days,
        price=compute_price(snapshot.price, days, party_size, snapshot.capacity),
    )


def raise_for_result(result: AvailabilityResult) -> PriceBreakdown:
    """Price of an accepted stay; any other result raises the matching typed error."""
    if result.available and result.price is not None:
        return result.price
    reason = result.reason or ReasonCode.INVALID_REQUEST
    if reason in (ReasonCode.INVALID_REQUEST, ReasonCode.INVALID_DATES, ReasonCode.PAST_DATE):
        raise ValidationError(result.message or "stay could not be priced", reason=reason)
    if reason == ReasonCode.PACKAGE_NOT_FOUND:
        raise NotFoundError(result.message, reason=reason)
    raise ConflictError(result.message, reason=reason, conflicts=result.conflicts)


async def list_occupied_dates(
    package_repo: PackageRepository,
    booking_repo: BookingRepository,
    *,
    package_id: int,
    start: date,
    end: date,
) -> Occupancy:
    """Nights in [start, end) already taken by active bookings of the package."""
    if start >= end:
        raise ValidationError("start must be earlier than end", reason=ReasonCode.INVALID_DATES)
    package = await package_repo.get(package_id)
    if package is None:
        raise NotFoundError("package not found")
    snapshot = PackageSnapshot.from_model(package)
    rejection = check_package(snapshot, party_size=1)
    if rejection is not None:
        raise ConflictError(rejection.message, reason=rejection.reason)

    bookings = await booking_repo.find_overlapping(package_id, start, end, ACTIVE_STATUSES)
    taken: set[date] = set()
    ranges: list[OccupiedRange] = []
    for booking in bookings:
        if booking.status not in ACTIVE_STATUSES:
            continue
        ranges.append(
            OccupiedRange(check_in=booking.check_in, check_out=booking.check_out, status=booking.status)
        )
        taken.update(night for night in stay_nights(booking.check_in, booking.check_out) if start <= night < end)
    ranges.sort(key=lambda item: item.check_in)
    return Occupancy(package=snapshot, start=start, end=end, occupied_dates=sorted(taken), bookings=ranges)
