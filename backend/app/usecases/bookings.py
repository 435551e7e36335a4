import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Optional, Sequence

from ..domain.errors import (
    CancelNotAllowedError,
    DuplicateConfirmationCodeError,
    ExhaustedRetriesError,
    NotFoundError,
    PermissionDeniedError,
    ReasonCode,
    ValidationError,
    VersionConflictError,
)
from ..domain.pricing import PriceBreakdown, compute_price
from ..domain.repositories import (
    UNSET,
    BookingFilters,
    BookingPatch,
    BookingRepository,
    GuestData,
    PackageRepository,
    Unset,
)
from ..domain.services import check_dates, stay_length_days
from ..domain.status import INITIAL_STATUS, ensure_transition, is_active
from ..models import Booking, BookingStatus, Package
from ..utils.time import business_today, check_in_moment, utc_now_naive
from .availability import check_availability, raise_for_result
from .confirmation_codes import CodePolicy, generate_unique_code

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARTY_SIZE = 50
# Guests may not cancel their own booking this close to check-in.
CANCEL_CUTOFF = timedelta(hours=24)


@dataclass(frozen=True)
class BookingOutcome:
    booking: Booking
    package: Optional[Package]
    price: Optional[PriceBreakdown]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_date(value: Any) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def validate_party_size(party_size: Any, *, max_party_size: int = DEFAULT_MAX_PARTY_SIZE) -> None:
    if not _is_int(party_size) or not 1 <= party_size <= max_party_size:
        raise ValidationError(f"party size must be an integer between 1 and {max_party_size}")


def validate_booking_request(
    *,
    package_id: Any,
    check_in: Any,
    check_out: Any,
    party_size: Any,
    user_id: Any,
    max_party_size: int = DEFAULT_MAX_PARTY_SIZE,
) -> None:
    """Shape checks on a raw booking request; raises ValidationError."""
    if package_id is None or check_in is None or check_out is None or party_size is None or user_id is None:
        raise ValidationError("package, check-in, check-out, party size and user are all required")
    if not _is_int(package_id) or package_id < 1:
        raise ValidationError("package id must be a positive integer")
    if not _is_int(user_id) or user_id < 1:
        raise ValidationError("user id must be a positive integer")
    if not _is_date(check_in) or not _is_date(check_out):
        raise ValidationError("check-in and check-out must be calendar dates", reason=ReasonCode.INVALID_DATES)
    validate_party_size(party_size, max_party_size=max_party_size)


def price_for(booking: Booking, package: Package) -> PriceBreakdown:
    return compute_price(
        package.price,
        stay_length_days(booking.check_in, booking.check_out),
        booking.party_size,
        package.capacity,
    )


async def create_booking(
    package_repo: PackageRepository,
    booking_repo: BookingRepository,
    *,
    user_id: int,
    package_id: int,
    check_in: date,
    check_out: date,
    party_size: int,
    special_request: Optional[str] = None,
    guests: Sequence[GuestData] = (),
    code_policy: CodePolicy = CodePolicy(),
    max_party_size: int = DEFAULT_MAX_PARTY_SIZE,
    today: Optional[date] = None,
) -> BookingOutcome:
    validate_booking_request(
        package_id=package_id,
        check_in=check_in,
        check_out=check_out,
        party_size=party_size,
        user_id=user_id,
        max_party_size=max_party_size,
    )
    today = today or business_today()
    rejection = check_dates(check_in, check_out, today=today)
    if rejection is not None:
        raise ValidationError(rejection.message, reason=rejection.reason)

    # Row lock serialises concurrent writers on the same package.
    package = await package_repo.get_for_update(package_id)
    result = await check_availability(
        package_repo,
        booking_repo,
        package_id=package_id,
        check_in=check_in,
        check_out=check_out,
        party_size=party_size,
        today=today,
        package=package,
    )
    price = raise_for_result(result)

    # The code lookup and the insert are not atomic: a concurrent create may
    # claim the same code in between, in which case a fresh code is drawn.
    for attempt in range(1, code_policy.max_attempts + 1):
        code = await generate_unique_code(booking_repo, policy=code_policy, year=today.year)
        try:
            booking = await booking_repo.create(
                package_id=package_id,
                user_id=user_id,
                check_in=check_in,
                check_out=check_out,
                party_size=party_size,
                total_price=price.total.minor,
                status=INITIAL_STATUS,
                confirmation_code=code,
                special_request=special_request or None,
                guests=guests,
            )
        except DuplicateConfirmationCodeError:
            logger.warning("confirmation code %s taken concurrently (attempt %d)", code, attempt)
            continue
        return BookingOutcome(booking=booking, package=package, price=price)

    logger.error("confirmation code insert collided %d times in a row", code_policy.max_attempts)
    raise ExhaustedRetriesError(code_policy.max_attempts)


async def _load_for_update(booking_repo: BookingRepository, booking_id: int, version: Optional[int]) -> Booking:
    booking = await booking_repo.get_for_update(booking_id)
    if booking is None:
        raise NotFoundError("booking not found", reason=ReasonCode.BOOKING_NOT_FOUND)
    if version is not None and booking.version != version:
        raise VersionConflictError("version mismatch")
    return booking


async def update_booking(
    package_repo: PackageRepository,
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    is_staff: bool,
    check_in: Optional[date] = None,
    check_out: Optional[date] = None,
    party_size: Optional[int] = None,
    special_request: Optional[str] | Unset = UNSET,
    version: Optional[int] = None,
    max_party_size: int = DEFAULT_MAX_PARTY_SIZE,
    today: Optional[date] = None,
) -> BookingOutcome:
    """
    Change the stay and/or the special request of a booking. A stay change is
    re-checked against other bookings (excluding this one) and re-priced.
    Guests may only change their own bookings while still pending.
    """
    stay_change = check_in is not None or check_out is not None or party_size is not None
    if not stay_change and special_request is UNSET:
        raise ValidationError("no changes supplied")

    booking = await _load_for_update(booking_repo, booking_id, version)
    if not is_staff:
        if booking.user_id != user_id:
            raise PermissionDeniedError("not allowed to change this booking")
        if booking.status != BookingStatus.PENDING:
            raise PermissionDeniedError("only pending bookings can be changed")
    if not stay_change:
        updated = await booking_repo.update(booking, BookingPatch(special_request=special_request or None))
        return BookingOutcome(booking=updated, package=None, price=None)

    if not is_active(booking.status):
        raise ValidationError(f"a {booking.status} booking can no longer be changed")
    new_check_in = check_in if check_in is not None else booking.check_in
    new_check_out = check_out if check_out is not None else booking.check_out
    new_party_size = party_size if party_size is not None else booking.party_size
    if not _is_date(new_check_in) or not _is_date(new_check_out):
        raise ValidationError("check-in and check-out must be calendar dates", reason=ReasonCode.INVALID_DATES)
    validate_party_size(new_party_size, max_party_size=max_party_size)

    package = await package_repo.get_for_update(booking.package_id)
    result = await check_availability(
        package_repo,
        booking_repo,
        package_id=booking.package_id,
        check_in=new_check_in,
        check_out=new_check_out,
        party_size=new_party_size,
        exclude_booking_id=booking.id,
        today=today,
        package=package,
    )
    price = raise_for_result(result)

    patch = BookingPatch(
        check_in=new_check_in,
        check_out=new_check_out,
        party_size=new_party_size,
        total_price=price.total.minor,
        special_request=special_request if special_request is UNSET else (special_request or None),
    )
    updated = await booking_repo.update(booking, patch)
    return BookingOutcome(booking=updated, package=package, price=price)


async def change_booking_status(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    new_status: BookingStatus,
    version: Optional[int] = None,
) -> tuple[Booking, BookingStatus]:
    """Apply one legal status step. Returns the booking and its previous status."""
    booking = await _load_for_update(booking_repo, booking_id, version)
    previous = booking.status
    ensure_transition(previous, new_status)
    updated = await booking_repo.update(booking, BookingPatch(status=new_status))
    return updated, previous


async def cancel_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    is_staff: bool,
    now: Optional[datetime] = None,
) -> tuple[Booking, BookingStatus]:
    booking = await _load_for_update(booking_repo, booking_id, None)
    if not is_staff and booking.user_id != user_id:
        raise PermissionDeniedError("not allowed to cancel this booking")
    previous = booking.status
    # Idempotent: already cancelled returns as-is
    if previous == BookingStatus.CANCELLED:
        return booking, previous
    ensure_transition(previous, BookingStatus.CANCELLED)
    if not is_staff and _is_within_cutoff(booking.check_in, now=now):
        raise CancelNotAllowedError("less than 24 hours before check-in, please contact the campsite")

    updated = await booking_repo.update(booking, BookingPatch(status=BookingStatus.CANCELLED))
    return updated, previous


async def get_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    user_id: int,
    is_staff: bool,
) -> Booking:
    booking = await booking_repo.get(booking_id)
    if booking is None:
        raise NotFoundError("booking not found", reason=ReasonCode.BOOKING_NOT_FOUND)
    if not is_staff and booking.user_id != user_id:
        raise PermissionDeniedError("not allowed to view this booking")
    return booking


async def list_bookings(
    booking_repo: BookingRepository,
    *,
    filters: BookingFilters,
    user_id: int,
    is_staff: bool,
) -> tuple[list[Booking], int]:
    if filters.page < 1 or filters.limit < 1:
        raise ValidationError("page and limit must be >= 1")
    if not is_staff:
        # Guests only ever see their own bookings.
        filters = replace(filters, user_id=user_id)
    return await booking_repo.search(filters)


def _is_within_cutoff(check_in: date, *, now: Optional[datetime] = None) -> bool:
    """Return True if `now` (naive UTC) is less than the cutoff before check-in."""
    now_utc = now or utc_now_naive()
    return check_in_moment(check_in) - now_utc < CANCEL_CUTOFF
