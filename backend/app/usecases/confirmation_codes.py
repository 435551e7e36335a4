import logging
import random
import string
from dataclasses import dataclass
from typing import Optional

from ..config import Settings
from ..domain.errors import ExhaustedRetriesError
from ..domain.repositories import BookingRepository
from ..utils.time import business_today

logger = logging.getLogger(__name__)

_system_rng = random.SystemRandom()


@dataclass(frozen=True)
class CodePolicy:
    """Shape of confirmation codes: ``{prefix}-{year}-{suffix}``."""

    prefix: str = "CAMP"
    alphabet: str = string.digits
    length: int = 4
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if len(set(self.alphabet)) < 2:
            raise ValueError("alphabet needs at least two distinct symbols")
        if self.length < 1:
            raise ValueError("length must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CodePolicy":
        return cls(
            prefix=settings.confirmation_code_prefix,
            alphabet=settings.confirmation_code_alphabet,
            length=settings.confirmation_code_length,
            max_attempts=settings.confirmation_code_max_attempts,
        )

    @property
    def space_size(self) -> int:
        """Distinct codes available per year."""
        return len(set(self.alphabet)) ** self.length


def generate_code(policy: CodePolicy, *, year: int, rng: random.Random) -> str:
    suffix = "".join(rng.choice(policy.alphabet) for _ in range(policy.length))
    return f"{policy.prefix}-{year}-{suffix}"


async def generate_unique_code(
    booking_repo: BookingRepository,
    *,
    policy: CodePolicy = CodePolicy(),
    year: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Draw candidates until one is unused in the booking repository.
    Gives up after `policy.max_attempts` collisions with ExhaustedRetriesError.
    """
    year = year if year is not None else business_today().year
    rng = rng or _system_rng
    for attempt in range(1, policy.max_attempts + 1):
        code = generate_code(policy, year=year, rng=rng)
        if await booking_repo.find_by_confirmation_code(code) is None:
            return code
        logger.debug("confirmation code collision on attempt %d: %s", attempt, code)

    logger.error(
        "confirmation code space exhausted: %d attempts collided (prefix=%s year=%d space=%d)",
        policy.max_attempts,
        policy.prefix,
        year,
        policy.space_size,
    )
    raise ExhaustedRetriesError(policy.max_attempts)
