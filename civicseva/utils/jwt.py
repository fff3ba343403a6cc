from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from civicseva.config.settings import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token shaped like the ones Supabase Auth issues.

    Production tokens come from Supabase; this is used by tests and local tooling.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    to_encode.setdefault("role", "authenticated")
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    return jwt.encode(to_encode, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    """Decode and validate a bearer token, returning its claims.

    Raises ValueError when the token is malformed, expired or carries no subject.
    """
    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e

    if not claims.get("sub"):
        raise ValueError("Token has no subject")
    return claims
