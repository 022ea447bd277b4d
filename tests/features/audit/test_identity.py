import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from starlette.requests import Request

from app.features.audit.dependencies.identity import decode_access_token, get_identity, require_user
from app.features.usage.schemas.usage import Identity
from app.platform.config import settings


def make_request(ip: str = "198.51.100.4") -> Request:
    return Request({"type": "http", "headers": [], "client": (ip, 5555)})


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_decode_access_token_rejects_wrong_secret():
    token = jwt.encode({"sub": "user-1"}, "some-other-secret", algorithm=settings.ALGORITHM)

    with pytest.raises(ValueError, match="Invalid token"):
        decode_access_token(token)


@pytest.mark.asyncio
async def test_valid_token_resolves_user():
    token = jwt.encode({"sub": "user-1"}, settings.JWT_SECRET_KEY, algorithm=settings.ALGORITHM)

    identity = await get_identity(make_request(), bearer(token))

    assert identity == Identity.user("user-1")
    assert identity.is_authenticated


@pytest.mark.asyncio
async def test_missing_token_resolves_guest_by_ip():
    first = await get_identity(make_request("198.51.100.4"), None)
    again = await get_identity(make_request("198.51.100.4"), None)
    other = await get_identity(make_request("198.51.100.5"), None)

    assert not first.is_authenticated
    assert first.guest_key.startswith("ip-")
    assert "198.51.100.4" not in first.guest_key
    assert first.guest_key == again.guest_key
    assert first.guest_key != other.guest_key


@pytest.mark.asyncio
async def test_token_without_subject_is_rejected():
    token = jwt.encode({"email": "a@example.com"}, settings.JWT_SECRET_KEY, algorithm=settings.ALGORITHM)

    with pytest.raises(HTTPException) as exc_info:
        await get_identity(make_request(), bearer(token))

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_require_user_rejects_guests():
    with pytest.raises(HTTPException) as exc_info:
        await require_user(Identity.guest("ip-abc"))

    assert exc_info.value.status_code == 401


def test_identity_needs_exactly_one_key():
    with pytest.raises(ValueError):
        Identity(user_id="user-1", guest_key="ip-abc")
    with pytest.raises(ValueError):
        Identity()
