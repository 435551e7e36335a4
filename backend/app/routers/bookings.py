from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import CurrentUser, get_code_policy, get_current_user, get_session, require_staff
from ..domain.errors import BookingError
from ..domain.repositories import UNSET, BookingFilters, GuestData
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemyPackageRepository
from ..models import BookingStatus
from ..schemas import BookingCreate, BookingPage, BookingRead, BookingStatusChange, BookingUpdate
from ..usecases import bookings as booking_usecase
from ..usecases.confirmation_codes import CodePolicy
from ..utils.audit_log import emit_audit_log
from .errors import to_http_exception

router = APIRouter(prefix="/bookings", tags=["bookings"], dependencies=[Depends(get_current_user)])


def _audit(**kwargs: Any) -> None:
    """Emit inside the transaction so an unaudited change is rolled back."""
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    code_policy: CodePolicy = Depends(get_code_policy),
) -> BookingRead:
    # guests book for themselves, staff may book for anyone
    owner_id = payload.user_id if user.is_staff and payload.user_id else user.id
    package_repo = SqlAlchemyPackageRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            outcome = await booking_usecase.create_booking(
                package_repo,
                booking_repo,
                user_id=owner_id,
                package_id=payload.package_id,
                check_in=payload.check_in,
                check_out=payload.check_out,
                party_size=payload.party_size,
                special_request=payload.special_request,
                guests=[GuestData(**guest.model_dump()) for guest in payload.guests],
                code_policy=code_policy,
                max_party_size=get_settings().max_party_size,
            )
        except BookingError as exc:
            raise to_http_exception(exc) from exc
        booking = outcome.booking
        _audit(
            action="booking.created",
            initiator="staff" if owner_id != user.id else "user",
            booking_id=booking.id,
            package_id=booking.package_id,
            user_id=booking.user_id,
            actor_id=user.id,
            confirmation_code=booking.confirmation_code,
            status_to=booking.status,
            version=booking.version,
            total_price=booking.total_price,
        )

    return BookingRead.from_db(booking=booking, package=outcome.package, price=outcome.price)


@router.get("", response_model=BookingPage)
async def list_bookings(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    package_id: Optional[int] = Query(default=None, ge=1),
    user_id: Optional[int] = Query(default=None, ge=1),
    confirmation_code: Optional[str] = Query(default=None, max_length=32),
    check_in_from: Optional[date] = Query(default=None),
    check_in_to: Optional[date] = Query(default=None),
    newest_first: bool = Query(default=True),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> BookingPage:
    booking_repo = SqlAlchemyBookingRepository(session)
    filters = BookingFilters(
        user_id=user_id,
        package_id=package_id,
        status=status_filter,
        confirmation_code=confirmation_code,
        check_in_from=check_in_from,
        check_in_to=check_in_to,
        page=page,
        limit=limit,
        newest_first=newest_first,
    )
    try:
        items, total = await booking_usecase.list_bookings(
            booking_repo,
            filters=filters,
            user_id=user.id,
            is_staff=user.is_staff,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    return BookingPage.build(
        [BookingRead.from_db(booking=b, package=b.package) for b in items],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_booking(
            booking_repo,
            booking_id=booking_id,
            user_id=user.id,
            is_staff=user.is_staff,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    return BookingRead.from_db(
        booking=booking,
        package=booking.package,
        price=booking_usecase.price_for(booking, booking.package),
    )


@router.patch("/{booking_id}", response_model=BookingRead)
async def update_booking(
    payload: BookingUpdate,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> BookingRead:
    special_request = payload.special_request if "special_request" in payload.model_fields_set else UNSET
    package_repo = SqlAlchemyPackageRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            outcome = await booking_usecase.update_booking(
                package_repo,
                booking_repo,
                booking_id=booking_id,
                user_id=user.id,
                is_staff=user.is_staff,
                check_in=payload.check_in,
                check_out=payload.check_out,
                party_size=payload.party_size,
                special_request=special_request,
                version=payload.version,
                max_party_size=get_settings().max_party_size,
            )
        except BookingError as exc:
            raise to_http_exception(exc) from exc
        booking = outcome.booking
        _audit(
            action="booking.updated",
            initiator="staff" if user.is_staff else "user",
            booking_id=booking.id,
            package_id=booking.package_id,
            user_id=booking.user_id,
            actor_id=user.id,
            confirmation_code=booking.confirmation_code,
            version=booking.version,
            total_price=booking.total_price,
            extra={"check_in": booking.check_in, "check_out": booking.check_out, "party_size": booking.party_size},
        )

    return BookingRead.from_db(booking=booking, package=outcome.package or booking.package, price=outcome.price)


@router.post("/{booking_id}/status", response_model=BookingRead)
async def change_booking_status(
    payload: BookingStatusChange,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff: CurrentUser = Depends(require_staff),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, previous = await booking_usecase.change_booking_status(
                booking_repo,
                booking_id=booking_id,
                new_status=payload.status,
                version=payload.version,
            )
        except BookingError as exc:
            raise to_http_exception(exc) from exc
        _audit(
            action="booking.status_changed",
            initiator="staff",
            booking_id=booking.id,
            package_id=booking.package_id,
            user_id=booking.user_id,
            actor_id=staff.id,
            confirmation_code=booking.confirmation_code,
            status_from=previous,
            status_to=booking.status,
            version=booking.version,
        )

    return BookingRead.from_db(booking=booking, package=booking.package)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, previous = await booking_usecase.cancel_booking(
                booking_repo,
                booking_id=booking_id,
                user_id=user.id,
                is_staff=user.is_staff,
            )
        except BookingError as exc:
            raise to_http_exception(exc) from exc
        if previous != booking.status:
            _audit(
                action="booking.cancelled",
                initiator="staff" if user.is_staff else "user",
                booking_id=booking.id,
                package_id=booking.package_id,
                user_id=booking.user_id,
                actor_id=user.id,
                confirmation_code=booking.confirmation_code,
                status_from=previous,
                status_to=booking.status,
                version=booking.version,
            )

    return BookingRead.from_db(booking=booking, package=booking.package)
