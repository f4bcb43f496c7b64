from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.core.config import settings
from circlerank.db.session import get_db
from circlerank.models.user import UserAccount


bearer = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class AuthUser:
    user_id: str
    email: str
    name: str
    status: str = "ACTIVE"


def _decode_token(token: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "algorithms": [settings.jwt_algorithm],
        "leeway": settings.jwt_exp_leeway_seconds,
    }

    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        kwargs["options"] = {"verify_aud": False}

    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer

    try:
        payload = jwt.decode(token, settings.jwt_secret, **kwargs)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    return payload


def _parse_payload(payload: dict[str, Any]) -> AuthUser:
    user_id = str(payload.get("user_id") or payload.get("sub") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid user_id claim")

    email = str(payload.get("email") or "").strip().lower()
    name = str(payload.get("name") or email or user_id)
    return AuthUser(user_id=user_id, email=email, name=name)


async def _resolve_user(db: AsyncSession, credentials: HTTPAuthorizationCredentials) -> AuthUser:
    user = _parse_payload(_decode_token(credentials.credentials))
    row = (await db.execute(select(UserAccount).where(UserAccount.id == user.user_id))).scalar_one_or_none()
    if row is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return AuthUser(user_id=row.id, email=row.email, name=row.name, status=row.status)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> AuthUser:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return await _resolve_user(db, credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> AuthUser | None:
    """Like ``get_current_user`` for public reads; ``None`` when no token is sent."""
    if credentials is None:
        return None
    return await _resolve_user(db, credentials)
