from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from civicseva.utils.jwt import verify_token

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

STAFF_ROLES = {"staff", "admin"}


@dataclass(frozen=True)
class Principal:
    """The caller behind a verified Supabase access token."""

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str = "citizen"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Citizen"


def principal_from_claims(claims: dict) -> Principal:
    app_metadata = claims.get("app_metadata") or {}
    user_metadata = claims.get("user_metadata") or {}
    return Principal(
        user_id=str(claims["sub"]),
        email=claims.get("email"),
        name=user_metadata.get("full_name") or user_metadata.get("name"),
        role=app_metadata.get("role", "citizen"),
    )


def _authenticate(token: str) -> Principal:
    try:
        claims = verify_token(token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal_from_claims(claims)


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    return _authenticate(credentials.credentials)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[Principal]:
    if credentials is None:
        return None
    return _authenticate(credentials.credentials)


def get_current_staff(current_user: Principal = Depends(get_current_user)) -> Principal:
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required",
        )
    return current_user
