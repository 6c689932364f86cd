"""
Mock authentication provider for local development and tests.
"""

from chatstream.interfaces.auth_provider import IAuthProvider, User


class MockAuthProvider(IAuthProvider):
    """The bearer token is taken as the user ID; nothing is verified."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled

    async def verify_token(self, token: str) -> User:
        user_id = token.strip()
        if not user_id:
            raise ValueError("Empty token")
        email = user_id if "@" in user_id else f"{user_id}@example.com"
        return User(id=user_id, email=email, display_name=user_id)

    def is_enabled(self) -> bool:
        return self._enabled
