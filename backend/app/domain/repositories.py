from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Collection, Optional, Protocol, Sequence

from ..models import Booking, BookingStatus, Package


class Unset(Enum):
    UNSET = "UNSET"


UNSET = Unset.UNSET


@dataclass(frozen=True)
class GuestData:
    name: str
    age: Optional[int] = None
    phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    dietary_requirements: Optional[str] = None
    id_number: Optional[str] = None


@dataclass(frozen=True)
class BookingPatch:
    """Fields to change on a booking. `None` leaves a field as-is."""

    check_in: Optional[date] = None
    check_out: Optional[date] = None
    party_size: Optional[int] = None
    total_price: Optional[int] = None
    status: Optional[BookingStatus] = None
    special_request: Optional[str] | Unset = UNSET


@dataclass(frozen=True)
class BookingFilters:
    user_id: Optional[int] = None
    package_id: Optional[int] = None
    status: Optional[BookingStatus] = None
    confirmation_code: Optional[str] = None
    check_in_from: Optional[date] = None
    check_in_to: Optional[date] = None
    page: int = 1
    limit: int = 10
    newest_first: bool = True


class PackageRepository(Protocol):
    async def get(self, package_id: int) -> Package | None: ...

    async def get_for_update(self, package_id: int) -> Package | None: ...


class BookingRepository(Protocol):
    async def find_overlapping(
        self,
        package_id: int,
        check_in: date,
        check_out: date,
        statuses: Collection[BookingStatus],
        exclude_id: int | None = None,
    ) -> list[Booking]: ...

    async def find_by_confirmation_code(self, code: str) -> Booking | None: ...

    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_for_update(self, booking_id: int) -> Booking | None: ...

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
    ) -> Booking: ...

    async def update(self, booking: Booking, patch: BookingPatch) -> Booking: ...

    async def search(self, filters: BookingFilters) -> tuple[list[Booking], int]: ...
