from dataclasses import dataclass

from .money import Money

# Party sizes above this share of capacity pay a per-guest surcharge.
BASE_CAPACITY_PCT = 80
# Per extra guest, per night, as a share of the daily rate.
SURCHARGE_PCT = 20


@dataclass(frozen=True)
class PriceBreakdown:
    base: Money
    surcharge: Money
    total: Money
    days: int
    daily_rate: Money
    base_capacity: int
    extra_guests: int


def base_capacity_for(capacity: int) -> int:
    """ceil(capacity * 0.8) in exact integer arithmetic."""
    if capacity < 1:
        raise ValueError("capacity must be >= 1")
    return -(-capacity * BASE_CAPACITY_PCT // 100)


def compute_price(daily_rate: Money | int, days: int, party_size: int, capacity: int) -> PriceBreakdown:
    """
    Pure price computation. Inputs must already be validated; contract
    violations (negative values, empty party, zero capacity) raise ValueError.
    """
    rate = daily_rate if isinstance(daily_rate, Money) else Money(daily_rate)
    if days < 0:
        raise ValueError("days must be >= 0")
    if party_size < 1:
        raise ValueError("party_size must be >= 1")

    base_capacity = base_capacity_for(capacity)
    base = rate * days
    extra_guests = max(party_size - base_capacity, 0)
    surcharge = rate.percent(SURCHARGE_PCT) * (extra_guests * days)
    return PriceBreakdown(
        base=base,
        surcharge=surcharge,
        total=base + surcharge,
        days=days,
        daily_rate=rate,
        base_capacity=base_capacity,
        extra_guests=extra_guests,
    )
