from datetime import date, datetime
from math import ceil
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.money import Money
from .domain.pricing import PriceBreakdown
from .domain.services import ConflictingBooking, PackageSnapshot
from .domain.status import status_label
from .models import Booking, BookingStatus, Guest, Package
from .usecases.availability import AvailabilityResult, Occupancy
from .utils.time import utc_naive_to_local


class AvailabilityQuery(BaseModel):
    package_id: int = Field(ge=1)
    check_in: date
    check_out: date
    party_size: int = Field(ge=1)
    exclude_booking_id: Optional[int] = Field(default=None, ge=1)


class PriceBreakdownRead(BaseModel):
    base: int
    surcharge: int
    total: int
    days: int
    daily_rate: int
    base_capacity: int
    extra_guests: int
    base_formatted: str
    surcharge_formatted: str
    total_formatted: str
    daily_rate_formatted: str

    @classmethod
    def from_domain(cls, price: PriceBreakdown) -> "PriceBreakdownRead":
        return cls(
            base=price.base.minor,
            surcharge=price.surcharge.minor,
            total=price.total.minor,
            days=price.days,
            daily_rate=price.daily_rate.minor,
            base_capacity=price.base_capacity,
            extra_guests=price.extra_guests,
            base_formatted=price.base.format(),
            surcharge_formatted=price.surcharge.format(),
            total_formatted=price.total.format(),
            daily_rate_formatted=price.daily_rate.format(),
        )


class ConflictRead(BaseModel):
    booking_id: int
    check_in: date
    check_out: date
    confirmation_code: str
    status: BookingStatus

    @classmethod
    def from_domain(cls, conflict: ConflictingBooking) -> "ConflictRead":
        return cls(
            booking_id=conflict.id,
            check_in=conflict.check_in,
            check_out=conflict.check_out,
            confirmation_code=conflict.confirmation_code,
            status=conflict.status,
        )


class PackageSummary(BaseModel):
    package_id: int
    name: str
    capacity: int
    daily_price: int
    daily_price_formatted: str
    duration: int

    @classmethod
    def from_snapshot(cls, package: PackageSnapshot) -> "PackageSummary":
        return cls(
            package_id=package.id,
            name=package.name,
            capacity=package.capacity,
            daily_price=package.price,
            daily_price_formatted=Money(package.price).format(),
            duration=package.duration,
        )


class AvailabilityRead(BaseModel):
    available: bool
    reason: Optional[str] = None
    message: str
    conflicts: list[ConflictRead] = []
    package: Optional[PackageSummary] = None
    days: Optional[int] = None
    price: Optional[PriceBreakdownRead] = None

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityRead":
        return cls(
            available=result.available,
            reason=result.reason.value if result.reason else None,
            message=result.message,
            conflicts=[ConflictRead.from_domain(c) for c in result.conflicts],
            package=PackageSummary.from_snapshot(result.package) if result.package else None,
            days=result.days,
            price=PriceBreakdownRead.from_domain(result.price) if result.price else None,
        )


class OccupiedRangeRead(BaseModel):
    check_in: date
    check_out: date
    status: BookingStatus


class OccupancyRead(BaseModel):
    package_id: int
    package_name: str
    start: date
    end: date
    occupied_dates: list[date]
    bookings: list[OccupiedRangeRead]

    @classmethod
    def from_domain(cls, occupancy: Occupancy) -> "OccupancyRead":
        return cls(
            package_id=occupancy.package.id,
            package_name=occupancy.package.name,
            start=occupancy.start,
            end=occupancy.end,
            occupied_dates=occupancy.occupied_dates,
            bookings=[
                OccupiedRangeRead(check_in=item.check_in, check_out=item.check_out, status=item.status)
                for item in occupancy.bookings
            ],
        )


class GuestCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    age: Optional[int] = Field(default=None, ge=0, le=150)
    phone: Optional[str] = Field(default=None, max_length=50)
    emergency_contact: Optional[str] = Field(default=None, max_length=255)
    emergency_phone: Optional[str] = Field(default=None, max_length=50)
    dietary_requirements: Optional[str] = None
    id_number: Optional[str] = Field(default=None, max_length=64)


class GuestRead(BaseModel):
    guest_id: int
    name: str
    age: Optional[int]
    phone: Optional[str]
    emergency_contact: Optional[str]
    emergency_phone: Optional[str]
    dietary_requirements: Optional[str]

    @classmethod
    def from_db(cls, guest: Guest) -> "GuestRead":
        return cls(
            guest_id=guest.id,
            name=guest.name,
            age=guest.age,
            phone=guest.phone,
            emergency_contact=guest.emergency_contact,
            emergency_phone=guest.emergency_phone,
            dietary_requirements=guest.dietary_requirements,
        )


class BookingCreate(BaseModel):
    package_id: int = Field(ge=1)
    check_in: date
    check_out: date
    party_size: int = Field(ge=1)
    special_request: Optional[str] = Field(default=None, max_length=2000)
    guests: list[GuestCreate] = Field(default_factory=list)
    # staff may book on behalf of another user
    user_id: Optional[int] = Field(default=None, ge=1)


class BookingUpdate(BaseModel):
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    party_size: Optional[int] = Field(default=None, ge=1)
    special_request: Optional[str] = Field(default=None, max_length=2000)
    version: Optional[int] = Field(default=None, ge=1)


class BookingStatusChange(BaseModel):
    status: BookingStatus
    version: Optional[int] = Field(default=None, ge=1)


class BookingRead(BaseModel):
    booking_id: int
    package_id: int
    package_name: Optional[str] = None
    user_id: int
    check_in: date
    check_out: date
    days: int
    party_size: int
    total_price: int
    total_price_formatted: str
    status: BookingStatus
    status_text: str
    confirmation_code: str
    special_request: Optional[str]
    version: int
    created_at: datetime
    updated_at: datetime
    guests: list[GuestRead] = []
    price: Optional[PriceBreakdownRead] = None

    @field_serializer("created_at", "updated_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return utc_naive_to_local(dt).isoformat()

    @classmethod
    def from_db(
        cls,
        *,
        booking: Booking,
        package: Optional[Package] = None,
        price: Optional[PriceBreakdown] = None,
    ) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            package_id=booking.package_id,
            package_name=package.name if package is not None else None,
            user_id=booking.user_id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            days=(booking.check_out - booking.check_in).days,
            party_size=booking.party_size,
            total_price=booking.total_price,
            total_price_formatted=Money(booking.total_price).format(),
            status=booking.status,
            status_text=status_label(booking.status),
            confirmation_code=booking.confirmation_code,
            special_request=booking.special_request,
            version=booking.version,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            guests=[GuestRead.from_db(g) for g in booking.guests],
            price=PriceBreakdownRead.from_domain(price) if price is not None else None,
        )


class BookingPage(BaseModel):
    items: list[BookingRead]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: list[BookingRead], *, page: int, limit: int, total: int) -> "BookingPage":
        return cls(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=ceil(total / limit) if limit else 0,
            has_next=page * limit < total,
            has_prev=page > 1,
        )


class ErrorDetail(BaseModel):
    reason: str
    message: str
    conflicts: Optional[list[ConflictRead]] = None
