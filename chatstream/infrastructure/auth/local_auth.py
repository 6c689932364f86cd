"""
Local JWT authentication provider.

Tokens are HS256 JWTs whose subject is the user ID. Issuing tokens is
outside this service; see chatstream.core.security for the helper used by
tooling and tests.
"""

from __future__ import annotations

from jose import JWTError

from chatstream.core.config import Settings
from chatstream.core.exceptions import AuthenticationError
from chatstream.core.security import decode_access_token
from chatstream.interfaces.auth_provider import IAuthProvider, User


class LocalAuthProvider(IAuthProvider):
    """Local auth provider with HMAC JWT validation."""

    def __init__(self, settings: Settings):
        if not settings.LOCAL_JWT_SECRET:
            raise ValueError("LOCAL_JWT_SECRET must be set for local auth")
        self._settings = settings

    async def verify_token(self, token: str) -> User:
        try:
            claims = decode_access_token(token, self._settings)
        except JWTError as e:
            raise AuthenticationError(f"Invalid token: {e}")
        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Token has no subject")
        email = claims.get("email")
        return User(
            id=str(subject),
            email=str(email) if email else None,
            display_name=str(claims.get("name") or subject),
        )

    def is_enabled(self) -> bool:
        return True
