from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.features.usage.schemas.usage import Identity
from app.platform.config import settings
from app.platform.logger import get_logger
from app.platform.utils.client_ip import generate_ip_fingerprint

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT access token"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ValueError("Token has expired")
    except jwt.PyJWTError:
        raise ValueError("Invalid token")


async def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """
    Resolve who is calling.

    - Valid bearer token → Identity(user_id=<sub>)
    - No token → guest keyed by client IP
    - A token that doesn't verify is rejected rather than silently
      downgraded to guest, otherwise a stale session would burn the
      single guest audit.
    """
    if credentials:
        try:
            payload = decode_access_token(credentials.credentials)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
        return Identity.user(str(user_id))

    return Identity.guest(generate_ip_fingerprint(request))


async def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return identity
