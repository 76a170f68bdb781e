import asyncio
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from land_trainer.config import settings
from land_trainer.db.database import get_or_create_user

security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> dict:
    """Verify JWT token and return payload"""
    if credentials is None:
        raise _unauthorized()
    try:
        payload = jwt.decode(credentials.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized()

    if not payload.get("sub"):
        raise _unauthorized()
    return payload


async def get_current_user(payload: dict = Depends(verify_token)) -> dict:
    """The caller's user record; created on the first request for a new identity."""
    return await asyncio.to_thread(get_or_create_user, payload["sub"], payload.get("email"))
