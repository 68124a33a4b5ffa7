"""FastAPI authentication dependencies for route protection."""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from entitlements.auth.jwt import decode_token

# Strict bearer: 403 when no token is provided
_bearer_scheme = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    """Identity taken from a verified access token."""

    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> CurrentUser:
    """Validate the Bearer token and return the caller's identity.

    Raises:
        HTTPException 401: If the token is invalid, expired, wrong type, or has no subject.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception from None

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub: str | None = payload.get("sub")
    if not sub:
        raise credentials_exception

    return CurrentUser(id=sub, role=payload.get("role") or "user")


async def get_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Return the caller only if the token carries the admin role.

    Raises:
        HTTPException 403: If the caller is not an admin.
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
