from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings


def business_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().business_timezone)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_today() -> date:
    """Calendar date at the campsite right now."""
    return datetime.now(timezone.utc).astimezone(business_tz()).date()


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(business_tz())


def check_in_moment(day: date) -> datetime:
    """Midnight of `day` at the campsite, as naive UTC."""
    return to_utc_naive(datetime(day.year, day.month, day.day, tzinfo=business_tz()))
