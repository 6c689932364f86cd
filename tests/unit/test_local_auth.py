"""
Unit tests for local token auth.
"""

import pytest

from chatstream.core.config import Settings
from chatstream.core.exceptions import AuthenticationError
from chatstream.core.security import create_access_token
from chatstream.infrastructure.auth.local_auth import LocalAuthProvider


@pytest.fixture
def settings():
    return Settings(LOCAL_JWT_SECRET="secret")


@pytest.mark.asyncio
async def test_round_trip(settings):
    token = create_access_token("alice", settings)
    user = await LocalAuthProvider(settings).verify_token(token)
    assert user.id == "alice"


@pytest.mark.asyncio
async def test_wrong_secret_rejected(settings):
    token = create_access_token("alice", Settings(LOCAL_JWT_SECRET="other"))
    with pytest.raises(AuthenticationError):
        await LocalAuthProvider(settings).verify_token(token)


@pytest.mark.asyncio
async def test_garbage_token_rejected(settings):
    with pytest.raises(AuthenticationError):
        await LocalAuthProvider(settings).verify_token("not-a-jwt")


def test_secret_required():
    with pytest.raises(ValueError):
        LocalAuthProvider(Settings(LOCAL_JWT_SECRET=""))
