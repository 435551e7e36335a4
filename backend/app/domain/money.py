"""Integer minor-unit money."""

from __future__ import annotations

from dataclasses import dataclass

CURRENCY_SYMBOL = "¥"
MINOR_PER_MAJOR = 100


@dataclass(frozen=True, order=True)
class Money:
    """Amount in minor currency units (fen). Never negative."""

    minor: int

    def __post_init__(self) -> None:
        if isinstance(self.minor, bool) or not isinstance(self.minor, int):
            raise TypeError("Money amount must be an integer number of minor units")
        if self.minor < 0:
            raise ValueError("Money amount cannot be negative")

    def percent(self, pct: int) -> "Money":
        """Share of this amount, rounded half up to the nearest minor unit."""
        if pct < 0:
            raise ValueError("percentage cannot be negative")
        return Money((self.minor * pct + 50) // 100)

    def format(self) -> str:
        major, minor = divmod(self.minor, MINOR_PER_MAJOR)
        return f"{CURRENCY_SYMBOL}{major}.{minor:02d}"

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.minor + other.minor)

    def __mul__(self, factor: int) -> "Money":
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Money(self.minor * factor)

    __rmul__ = __mul__

    def __int__(self) -> int:
        return self.minor

    def __str__(self) -> str:
        return self.format()
