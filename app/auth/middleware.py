# app/auth/middleware.py
"""
FastAPI authentication dependencies.

Sessions are issued by the host application's auth layer; this module only
turns a bearer token into a user id through the resolver installed with
set_session_resolver().
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Callable, Optional
from dataclasses import dataclass

security = HTTPBearer(auto_error=False)

# token -> user id (None when the token is invalid or expired)
SessionResolver = Callable[[str], Optional[str]]

_session_resolver: Optional[SessionResolver] = None


def set_session_resolver(resolver: Optional[SessionResolver]) -> None:
    global _session_resolver
    _session_resolver = resolver


def is_auth_configured() -> bool:
    return _session_resolver is not None


@dataclass
class AuthResult:
    """Result of authentication check."""
    authenticated: bool
    user_id: Optional[str] = None
    error: Optional[str] = None


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AuthResult:
    """
    Dependency that requires a valid session and yields the caller's user id.

    Raises:
        HTTPException 401: If no or an invalid token is presented
        HTTPException 503: If no session resolver is installed
    """
    if not is_auth_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not configured.",
            headers={"X-Auth-Status": "not_configured"}
        )

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = _session_resolver(credentials.credentials)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return AuthResult(authenticated=True, user_id=user_id)
