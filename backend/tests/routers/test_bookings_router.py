from datetime import date, datetime, timezone
from typing import Any, cast

import pytest
from app.config import Settings
from app.deps import CurrentUser
from app.domain.errors import (
    CancelNotAllowedError,
    ConflictError,
    DuplicateConfirmationCodeError,
    ExhaustedRetriesError,
    ReasonCode,
    StorageError,
)
from app.domain.pricing import compute_price
from app.domain.repositories import UNSET
from app.domain.services import ConflictingBooking
from app.models import Booking, BookingStatus, Package, PackageStatus, UserRole
from app.routers import bookings as router
from app.schemas import BookingCreate, BookingStatusChange, BookingUpdate
from app.usecases.bookings import BookingOutcome
from app.usecases.confirmation_codes import CodePolicy
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

GUEST = CurrentUser(id=7, role=UserRole.GUEST)
STAFF = CurrentUser(id=1, role=UserRole.STAFF)


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


def _package() -> Package:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return Package(
        id=1,
        name="Family tent",
        price=10000,
        capacity=6,
        duration=2,
        status=PackageStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )


def _booking(status: BookingStatus = BookingStatus.PENDING, version: int = 1) -> Booking:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return Booking(
        id=100,
        package_id=1,
        user_id=GUEST.id,
        check_in=date(2025, 9, 10),
        check_out=date(2025, 9, 12),
        party_size=6,
        total_price=24000,
        status=status,
        confirmation_code="CAMP-2025-0100",
        special_request=None,
        version=version,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def audit_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(router, "SqlAlchemyPackageRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyBookingRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)
    return calls


def _payload(**overrides: Any) -> BookingCreate:
    values: dict[str, Any] = dict(
        package_id=1,
        check_in=date(2025, 9, 10),
        check_out=date(2025, 9, 12),
        party_size=6,
        guests=[{"name": "Li Wei", "age": 34}],
    )
    values.update(overrides)
    return BookingCreate(**values)


@pytest.mark.asyncio
async def test_create_booking_emits_audit(monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]) -> None:
    package = _package()
    booking = _booking()
    seen: dict[str, Any] = {}

    async def fake_create(*args: object, **kwargs: Any) -> BookingOutcome:
        seen.update(kwargs)
        return BookingOutcome(booking=booking, package=package, price=compute_price(10000, 2, 6, 6))

    monkeypatch.setattr(router.booking_usecase, "create_booking", fake_create)

    result = await router.create_booking(
        payload=_payload(),
        session=cast(AsyncSession, DummySession()),
        user=GUEST,
        code_policy=CodePolicy(),
    )

    assert result.booking_id == booking.id
    assert result.package_name == "Family tent"
    assert result.total_price_formatted == "¥240.00"
    assert result.price is not None and result.price.surcharge == 4000
    assert result.status_text == "Awaiting confirmation"
    assert seen["user_id"] == GUEST.id
    assert seen["guests"][0].name == "Li Wei"
    assert len(audit_calls) == 1
    assert audit_calls[0]["action"] == "booking.created"
    assert audit_calls[0]["initiator"] == "user"
    assert audit_calls[0]["confirmation_code"] == booking.confirmation_code


@pytest.mark.asyncio
async def test_guest_cannot_book_for_someone_else(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    seen: dict[str, Any] = {}

    async def fake_create(*args: object, **kwargs: Any) -> BookingOutcome:
        seen.update(kwargs)
        return BookingOutcome(booking=_booking(), package=None, price=None)

    monkeypatch.setattr(router.booking_usecase, "create_booking", fake_create)

    await router.create_booking(
        payload=_payload(user_id=55), session=cast(AsyncSession, DummySession()), user=GUEST, code_policy=CodePolicy()
    )
    assert seen["user_id"] == GUEST.id

    await router.create_booking(
        payload=_payload(user_id=55), session=cast(AsyncSession, DummySession()), user=STAFF, code_policy=CodePolicy()
    )
    assert seen["user_id"] == 55
    assert audit_calls[-1]["initiator"] == "staff"


@pytest.mark.asyncio
async def test_create_conflict_returns_409_with_conflicts(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    conflict = ConflictingBooking(
        id=5,
        check_in=date(2025, 9, 9),
        check_out=date(2025, 9, 11),
        confirmation_code="CAMP-2025-0005",
        status=BookingStatus.CONFIRMED,
    )

    async def fake_create(*args: object, **kwargs: object) -> BookingOutcome:
        raise ConflictError("selected dates conflict with an existing booking", conflicts=[conflict])

    monkeypatch.setattr(router.booking_usecase, "create_booking", fake_create)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_booking(
            payload=_payload(), session=cast(AsyncSession, DummySession()), user=GUEST, code_policy=CodePolicy()
        )
    assert excinfo.value.status_code == 409
    detail = cast(dict[str, Any], excinfo.value.detail)
    assert detail["reason"] == "DATE_CONFLICT"
    assert detail["conflicts"][0]["booking_id"] == 5
    assert detail["conflicts"][0]["check_in"] == "2025-09-09"
    assert audit_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,status_code",
    [(ExhaustedRetriesError(10), 503), (StorageError("storage is temporarily unavailable"), 500)],
)
async def test_create_system_failures(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]], error: Exception, status_code: int
) -> None:
    async def fake_create(*args: object, **kwargs: object) -> BookingOutcome:
        raise error

    monkeypatch.setattr(router.booking_usecase, "create_booking", fake_create)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_booking(
            payload=_payload(), session=cast(AsyncSession, DummySession()), user=GUEST, code_policy=CodePolicy()
        )
    assert excinfo.value.status_code == status_code


@pytest.mark.asyncio
async def test_large_party_is_checked_against_configured_ceiling(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    seen: dict[str, Any] = {}

    async def fake_create(*args: object, **kwargs: Any) -> BookingOutcome:
        seen.update(kwargs)
        return BookingOutcome(booking=_booking(), package=_package(), price=None)

    monkeypatch.setattr(router.booking_usecase, "create_booking", fake_create)
    monkeypatch.setattr(router, "get_settings", lambda: Settings(max_party_size=80))

    await router.create_booking(
        payload=_payload(party_size=60), session=cast(AsyncSession, DummySession()), user=GUEST, code_policy=CodePolicy()
    )
    assert seen["party_size"] == 60
    assert seen["max_party_size"] == 80


@pytest.mark.asyncio
async def test_unresolved_code_collision_is_a_conflict_not_a_server_error(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    async def fake_create(*args: object, **kwargs: object) -> BookingOutcome:
        raise DuplicateConfirmationCodeError("CAMP-2025-0100")

    monkeypatch.setattr(router.booking_usecase, "create_booking", fake_create)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_booking(
            payload=_payload(), session=cast(AsyncSession, DummySession()), user=GUEST, code_policy=CodePolicy()
        )
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["reason"] == "CODE_COLLISION"
    assert audit_calls == []


@pytest.mark.asyncio
async def test_update_passes_unset_when_special_request_omitted(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    seen: dict[str, Any] = {}

    async def fake_update(*args: object, **kwargs: Any) -> BookingOutcome:
        seen.update(kwargs)
        return BookingOutcome(booking=_booking(version=2), package=None, price=None)

    monkeypatch.setattr(router.booking_usecase, "update_booking", fake_update)

    await router.update_booking(
        payload=BookingUpdate(party_size=3, version=1),
        booking_id=100,
        session=cast(AsyncSession, DummySession()),
        user=GUEST,
    )
    assert seen["special_request"] is UNSET
    assert seen["party_size"] == 3

    await router.update_booking(
        payload=BookingUpdate(special_request=None),
        booking_id=100,
        session=cast(AsyncSession, DummySession()),
        user=GUEST,
    )
    assert seen["special_request"] is None
    assert [c["action"] for c in audit_calls] == ["booking.updated", "booking.updated"]


@pytest.mark.asyncio
async def test_status_change_audits_previous_status(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    booking = _booking(status=BookingStatus.CONFIRMED, version=2)

    async def fake_change(*args: object, **kwargs: object) -> tuple[Booking, BookingStatus]:
        return booking, BookingStatus.PENDING

    monkeypatch.setattr(router.booking_usecase, "change_booking_status", fake_change)

    result = await router.change_booking_status(
        payload=BookingStatusChange(status=BookingStatus.CONFIRMED, version=1),
        booking_id=booking.id,
        session=cast(AsyncSession, DummySession()),
        staff=STAFF,
    )
    assert result.status == BookingStatus.CONFIRMED
    assert audit_calls[0]["status_from"] == BookingStatus.PENDING
    assert audit_calls[0]["status_to"] == BookingStatus.CONFIRMED
    assert audit_calls[0]["actor_id"] == STAFF.id


@pytest.mark.asyncio
async def test_repeat_cancel_is_not_audited(monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]) -> None:
    booking = _booking(status=BookingStatus.CANCELLED, version=2)

    async def fake_cancel(*args: object, **kwargs: object) -> tuple[Booking, BookingStatus]:
        return booking, BookingStatus.CANCELLED

    monkeypatch.setattr(router.booking_usecase, "cancel_booking", fake_cancel)

    result = await router.cancel_booking(booking_id=booking.id, session=cast(AsyncSession, DummySession()), user=GUEST)
    assert result.status == BookingStatus.CANCELLED
    assert audit_calls == []


@pytest.mark.asyncio
async def test_cancel_log_failure_returns_500(monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]) -> None:
    booking = _booking(status=BookingStatus.CANCELLED, version=2)

    async def fake_cancel(*args: object, **kwargs: object) -> tuple[Booking, BookingStatus]:
        return booking, BookingStatus.PENDING

    def fake_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router.booking_usecase, "cancel_booking", fake_cancel)
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await router.cancel_booking(booking_id=booking.id, session=cast(AsyncSession, DummySession()), user=GUEST)
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_cancel_inside_cutoff_is_forbidden(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    async def fake_cancel(*args: object, **kwargs: object) -> tuple[Booking, BookingStatus]:
        raise CancelNotAllowedError("less than 24 hours before check-in, please contact the campsite")

    monkeypatch.setattr(router.booking_usecase, "cancel_booking", fake_cancel)

    with pytest.raises(HTTPException) as excinfo:
        await router.cancel_booking(booking_id=100, session=cast(AsyncSession, DummySession()), user=GUEST)
    assert excinfo.value.status_code == 403
    assert cast(dict[str, Any], excinfo.value.detail)["reason"] == ReasonCode.CANCEL_NOT_ALLOWED.value


@pytest.mark.asyncio
async def test_list_bookings_builds_page(monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]) -> None:
    booking = _booking()
    booking.package = _package()
    seen: dict[str, Any] = {}

    async def fake_list(*args: object, **kwargs: Any) -> tuple[list[Booking], int]:
        seen.update(kwargs)
        return [booking], 11

    monkeypatch.setattr(router.booking_usecase, "list_bookings", fake_list)

    page = await router.list_bookings(
        page=2,
        limit=5,
        status_filter=BookingStatus.PENDING,
        package_id=None,
        user_id=None,
        confirmation_code=None,
        check_in_from=None,
        check_in_to=None,
        newest_first=True,
        session=cast(AsyncSession, DummySession()),
        user=GUEST,
    )
    assert page.total == 11
    assert page.total_pages == 3
    assert page.has_next and page.has_prev
    assert page.items[0].package_name == "Family tent"
    assert seen["filters"].status == BookingStatus.PENDING
    assert seen["is_staff"] is False
