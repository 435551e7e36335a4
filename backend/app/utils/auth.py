from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence

import jwt
from jwt import InvalidTokenError

TOKEN_ISSUER = "campsite-booking"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    expires_at: datetime


def create_access_token(
    *,
    user_id: int,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(hours=12))
    payload = {"sub": str(user_id), "iss": TOKEN_ISSUER, "iat": now, "exp": exp}
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> TokenClaims:
    """Validate signature, expiry and issuer. Raises ValueError on any failure."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=list(algorithms),
            issuer=TOKEN_ISSUER,
            options={"require": ["sub", "exp"]},
        )
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise ValueError("token sub is not an integer") from exc
    return TokenClaims(user_id=user_id, expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc))
