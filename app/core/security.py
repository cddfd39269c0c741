from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel, ValidationError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TTL_SECONDS = 15 * 60


class AccessClaims(BaseModel):
    """Claims of the access tokens issued by the auth service."""

    sub: str
    """User uid"""
    iat: int
    exp: int


def _signing_key() -> str:
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not set, every authenticated request will be refused")
        raise HTTPException(status_code=503, detail="Authentication is not configured")
    return settings.jwt_secret


def create_access_token(*, sub: str, ttl_seconds: int = ACCESS_TOKEN_TTL_SECONDS) -> str:
    """Issue a token for ``sub``; used by tests and local tooling."""
    now = datetime.now(UTC)
    claims = AccessClaims(
        sub=sub,
        iat=int(now.timestamp()),
        exp=int((now + timedelta(seconds=ttl_seconds)).timestamp()),
    )
    return jwt.encode(claims.model_dump(), _signing_key(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> AccessClaims:
    """Raises ``jwt.InvalidTokenError`` for bad signatures, expired tokens or missing claims."""
    payload = jwt.decode(
        token,
        _signing_key(),
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
    try:
        return AccessClaims.model_validate(payload)
    except ValidationError as e:
        raise jwt.InvalidTokenError(str(e)) from e


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        claims = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token") from None

    result = await db.exec(select(User).where(User.uid == claims.sub))
    user = result.first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
