# app/auth/__init__.py
"""
Authentication hooks.
Session issuance lives in the host application; this module resolves bearer
tokens to user ids for the search endpoints.
"""

from .middleware import (
    require_user,
    AuthResult,
    SessionResolver,
    set_session_resolver,
    is_auth_configured,
)

__all__ = [
    "require_user",
    "AuthResult",
    "SessionResolver",
    "set_session_resolver",
    "is_auth_configured",
]
