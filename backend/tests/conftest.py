from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Collection, Optional, Sequence

import pytest
from app.domain.errors import DuplicateConfirmationCodeError
from app.domain.repositories import UNSET, BookingFilters, BookingPatch, GuestData
from app.models import Booking, BookingStatus, Guest, Package, PackageStatus


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InMemoryPackageRepo:
    def __init__(self) -> None:
        self.packages: dict[int, Package] = {}
        self.calls = 0
        self.locked: list[int] = []

    def add(
        self,
        *,
        package_id: int = 1,
        name: str = "Family tent",
        price: int = 10000,
        capacity: int = 6,
        duration: int = 2,
        status: PackageStatus = PackageStatus.ACTIVE,
    ) -> Package:
        now = _utc_now_naive()
        package = Package(
            id=package_id,
            name=name,
            price=price,
            capacity=capacity,
            duration=duration,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.packages[package_id] = package
        return package

    async def get(self, package_id: int) -> Optional[Package]:
        self.calls += 1
        return self.packages.get(package_id)

    async def get_for_update(self, package_id: int) -> Optional[Package]:
        self.calls += 1
        self.locked.append(package_id)
        return self.packages.get(package_id)


@dataclass
class InMemoryBookingRepo:
    packages: InMemoryPackageRepo
    bookings: dict[int, Booking] = field(default_factory=dict)
    calls: int = 0
    code_lookups: list[str] = field(default_factory=list)
    # Number of upcoming creates that lose the confirmation code to a concurrent insert.
    code_races: int = 0
    _next_id: int = 1
    _next_guest_id: int = 1

    def add(
        self,
        *,
        check_in: date,
        check_out: date,
        package_id: int = 1,
        status: BookingStatus = BookingStatus.CONFIRMED,
        party_size: int = 2,
        user_id: int = 1,
        code: Optional[str] = None,
    ) -> Booking:
        booking_id = self._next_id
        self._next_id += 1
        now = _utc_now_naive()
        booking = Booking(
            id=booking_id,
            package_id=package_id,
            user_id=user_id,
            check_in=check_in,
            check_out=check_out,
            party_size=party_size,
            total_price=0,
            status=status,
            confirmation_code=code or f"CAMP-2025-{booking_id:04d}",
            special_request=None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.bookings[booking_id] = booking
        return booking

    async def find_overlapping(
        self,
        package_id: int,
        check_in: date,
        check_out: date,
        statuses: Collection[BookingStatus],
        exclude_id: Optional[int] = None,
    ) -> list[Booking]:
        self.calls += 1
        return [
            b
            for b in self.bookings.values()
            if b.package_id == package_id
            and b.status in statuses
            and b.id != exclude_id
            and b.check_in < check_out
            and check_in < b.check_out
        ]

    async def find_by_confirmation_code(self, code: str) -> Optional[Booking]:
        self.calls += 1
        self.code_lookups.append(code)
        return next((b for b in self.bookings.values() if b.confirmation_code == code), None)

    async def get(self, booking_id: int) -> Optional[Booking]:
        self.calls += 1
        booking = self.bookings.get(booking_id)
        if booking is not None:
            booking.package = self.packages.packages.get(booking.package_id)
        return booking

    async def get_for_update(self, booking_id: int) -> Optional[Booking]:
        return await self.get(booking_id)

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
        special_request: Optional[str],
        guests: Sequence[GuestData] = (),
    ) -> Booking:
        taken = any(b.confirmation_code == confirmation_code for b in self.bookings.values())
        if self.code_races > 0 or taken:
            self.code_races = max(self.code_races - 1, 0)
            raise DuplicateConfirmationCodeError(confirmation_code)
        booking = self.add(
            check_in=check_in,
            check_out=check_out,
            package_id=package_id,
            status=status,
            party_size=party_size,
            user_id=user_id,
            code=confirmation_code,
        )
        booking.total_price = total_price
        booking.special_request = special_request
        for data in guests:
            booking.guests.append(Guest(id=self._next_guest_id, created_at=booking.created_at, **data.__dict__))
            self._next_guest_id += 1
        return booking

    async def update(self, booking: Booking, patch: BookingPatch) -> Booking:
        self.calls += 1
        for name in ("check_in", "check_out", "party_size", "total_price", "status"):
            value = getattr(patch, name)
            if value is not None:
                setattr(booking, name, value)
        if patch.special_request is not UNSET:
            booking.special_request = patch.special_request
        booking.version += 1
        booking.updated_at = _utc_now_naive()
        return booking

    async def search(self, filters: BookingFilters) -> tuple[list[Booking], int]:
        self.calls += 1
        items = [
            b
            for b in self.bookings.values()
            if (filters.user_id is None or b.user_id == filters.user_id)
            and (filters.package_id is None or b.package_id == filters.package_id)
            and (filters.status is None or b.status == filters.status)
            and (not filters.confirmation_code or filters.confirmation_code in b.confirmation_code)
        ]
        items.sort(key=lambda b: b.id, reverse=filters.newest_first)
        start = (filters.page - 1) * filters.limit
        return items[start : start + filters.limit], len(items)


@pytest.fixture
def package_repo() -> InMemoryPackageRepo:
    repo = InMemoryPackageRepo()
    repo.add()
    return repo


@pytest.fixture
def booking_repo(package_repo: InMemoryPackageRepo) -> InMemoryBookingRepo:
    return InMemoryBookingRepo(packages=package_repo)


@pytest.fixture
def today() -> date:
    return date(2025, 9, 1)
