from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user, get_session
from ..domain.errors import BookingError
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemyPackageRepository
from ..schemas import AvailabilityQuery, AvailabilityRead, OccupancyRead
from ..usecases import availability as availability_usecase
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["availability"], dependencies=[Depends(get_current_user)])


@router.post("/bookings/availability", response_model=AvailabilityRead)
async def check_availability(
    payload: AvailabilityQuery,
    session: AsyncSession = Depends(get_session),
) -> AvailabilityRead:
    """An unavailable stay is still a successful check: 200 with available=false."""
    package_repo = SqlAlchemyPackageRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        result = await availability_usecase.check_availability(
            package_repo,
            booking_repo,
            package_id=payload.package_id,
            check_in=payload.check_in,
            check_out=payload.check_out,
            party_size=payload.party_size,
            exclude_booking_id=payload.exclude_booking_id,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    return AvailabilityRead.from_result(result)


@router.get("/packages/{package_id}/occupied-dates", response_model=OccupancyRead)
async def list_occupied_dates(
    package_id: int,
    start: date = Query(..., description="first night to report (inclusive)"),
    end: date = Query(..., description="last night to report (exclusive)"),
    session: AsyncSession = Depends(get_session),
) -> OccupancyRead:
    package_repo = SqlAlchemyPackageRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        occupancy = await availability_usecase.list_occupied_dates(
            package_repo,
            booking_repo,
            package_id=package_id,
            start=start,
            end=end,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    return OccupancyRead.from_domain(occupancy)
