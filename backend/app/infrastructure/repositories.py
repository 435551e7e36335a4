from __future__ import annotations

import logging
from datetime import date, datetime
from functools import wraps
from typing import Any, Awaitable, Callable, Collection, List, ParamSpec, Sequence, TypeVar

from sqlalchemy import ColumnElement, delete, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.errors import BookingError, ConflictError, DuplicateConfirmationCodeError, ReasonCode, StorageError
from ..domain.repositories import (
    UNSET,
    BookingFilters,
    BookingPatch,
    BookingRepository,
    GuestData,
    PackageRepository,
)
from ..domain.services import ConflictingBooking, stay_nights
from ..domain.status import ACTIVE_STATUSES, is_active
from ..models import Booking, BookingNight, BookingStatus, Guest, Package
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def _storage_faults(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Surface driver/ORM failures as StorageError; domain errors pass through."""

    @wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await fn(*args, **kwargs)
        except BookingError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("storage fault in %s", fn.__qualname__)
            raise StorageError("storage is temporarily unavailable") from exc

    return wrapper


class SqlAlchemyPackageRepository(PackageRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @_storage_faults
    async def get(self, package_id: int) -> Package | None:
        return await self.session.get(Package, package_id)

    @_storage_faults
    async def get_for_update(self, package_id: int) -> Package | None:
        result = await self.session.scalar(select(Package).where(Package.id == package_id).with_for_update())
        return result if isinstance(result, Package) else None


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @_storage_faults
    async def find_overlapping(
        self,
        package_id: int,
        check_in: date,
        check_out: date,
        statuses: Collection[BookingStatus],
        exclude_id: int | None = None,
    ) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.package_id == package_id,
                Booking.status.in_(list(statuses)),
                # [a, b) and [c, d) intersect iff a < d and c < b
                Booking.check_in < check_out,
                Booking.check_out > check_in,
            )
            .order_by(Booking.check_in)
        )
        if exclude_id is not None:
            stmt = stmt.where(Booking.id != exclude_id)
        return list((await self.session.scalars(stmt)).all())

    @_storage_faults
    async def find_by_confirmation_code(self, code: str) -> Booking | None:
        return await self.session.scalar(select(Booking).where(Booking.confirmation_code == code))

    @_storage_faults
    async def get(self, booking_id: int) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.package), selectinload(Booking.guests))
            .where(Booking.id == booking_id)
        )
        return await self.session.scalar(stmt)

    @_storage_faults
    async def get_for_update(self, booking_id: int) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.package), selectinload(Booking.guests))
            .where(Booking.id == booking_id)
            .with_for_update()
        )
        return await self.session.scalar(stmt)

    @_storage_faults
    async def create(
        self,
        *,
        package_id: int,
        user_id: int,
        check_in: date,
        check_out: date,
        party_size: int,
        total_price: int,
        status: BookingStatus,
        confirmation_code: str,
        special_request: str | None,
        guests: Sequence[GuestData] = (),
    ) -> Booking:
        now = utc_now_naive()
        booking = Booking(
            package_id=package_id,
            user_id=user_id,
            check_in=check_in,
            check_out=check_out,
            party_size=party_size,
            total_price=total_price,
            status=status,
            confirmation_code=confirmation_code,
            special_request=special_request,
            version=1,
            created_at=now,
            updated_at=now,
            guests=[_guest_from(data, now=now) for data in guests],
        )
        try:
            async with self.session.begin_nested():
                self.session.add(booking)
                await self.session.flush()
        except IntegrityError as exc:
            if _is_code_collision(exc):
                raise DuplicateConfirmationCodeError(confirmation_code) from exc
            raise
        if is_active(booking.status):
            await self._claim_nights(booking)
        return booking

    @_storage_faults
    async def update(self, booking: Booking, patch: BookingPatch) -> Booking:
        stay_changed = False
        if patch.check_in is not None and patch.check_in != booking.check_in:
            booking.check_in = patch.check_in
            stay_changed = True
        if patch.check_out is not None and patch.check_out != booking.check_out:
            booking.check_out = patch.check_out
            stay_changed = True
        if patch.party_size is not None:
            booking.party_size = patch.party_size
        if patch.total_price is not None:
            booking.total_price = patch.total_price
        status_changed = patch.status is not None and patch.status != booking.status
        if patch.status is not None:
            booking.status = patch.status
        if patch.special_request is not UNSET:
            booking.special_request = patch.special_request
        booking.version += 1
        booking.updated_at = utc_now_naive()
        self.session.add(booking)
        await self.session.flush()

        if not is_active(booking.status):
            if status_changed:
                await self._release_nights(booking.id)
        elif stay_changed:
            await self._release_nights(booking.id)
            await self._claim_nights(booking)
        return booking

    @_storage_faults
    async def search(self, filters: BookingFilters) -> tuple[List[Booking], int]:
        conditions = _filter_conditions(filters)
        total = await self.session.scalar(select(func.count()).select_from(Booking).where(*conditions))
        order = Booking.created_at.desc() if filters.newest_first else Booking.created_at.asc()
        stmt = (
            select(Booking)
            .options(selectinload(Booking.package), selectinload(Booking.guests))
            .where(*conditions)
            .order_by(order, Booking.id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        items = list((await self.session.scalars(stmt)).all())
        return items, int(total or 0)

    async def _claim_nights(self, booking: Booking) -> None:
        rows: list[dict[str, Any]] = [
            {"package_id": booking.package_id, "booking_id": booking.id, "night": night}
            for night in stay_nights(booking.check_in, booking.check_out)
        ]
        if not rows:
            return
        try:
            async with self.session.begin_nested():
                await self.session.execute(insert(BookingNight), rows)
        except IntegrityError as exc:
            logger.warning(
                "night claim rejected for package %s (%s..%s)",
                booking.package_id,
                booking.check_in,
                booking.check_out,
            )
            holders = await self.find_overlapping(
                booking.package_id,
                booking.check_in,
                booking.check_out,
                ACTIVE_STATUSES,
                booking.id,
            )
            raise ConflictError(
                "selected dates conflict with an existing booking",
                reason=ReasonCode.DATE_CONFLICT,
                conflicts=[ConflictingBooking.from_model(holder) for holder in holders],
            ) from exc

    async def _release_nights(self, booking_id: int) -> None:
        await self.session.execute(delete(BookingNight).where(BookingNight.booking_id == booking_id))


def _guest_from(data: GuestData, *, now: datetime) -> Guest:
    return Guest(
        name=data.name,
        age=data.age,
        phone=data.phone,
        emergency_contact=data.emergency_contact,
        emergency_phone=data.emergency_phone,
        dietary_requirements=data.dietary_requirements,
        id_number=data.id_number,
        created_at=now,
    )


def _filter_conditions(filters: BookingFilters) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if filters.user_id is not None:
        conditions.append(Booking.user_id == filters.user_id)
    if filters.package_id is not None:
        conditions.append(Booking.package_id == filters.package_id)
    if filters.status is not None:
        conditions.append(Booking.status == filters.status)
    if filters.confirmation_code:
        conditions.append(Booking.confirmation_code.contains(filters.confirmation_code, autoescape=True))
    if filters.check_in_from is not None:
        conditions.append(Booking.check_in >= filters.check_in_from)
    if filters.check_in_to is not None:
        conditions.append(Booking.check_in <= filters.check_in_to)
    return conditions


def _is_code_collision(exc: IntegrityError) -> bool:
    # MySQL names the violated key, SQLite the column; both mention confirmation_code.
    return "confirmation_code" in str(exc.orig)
