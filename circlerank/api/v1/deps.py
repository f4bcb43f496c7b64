from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.models.user import UserAccount


async def get_user_or_404(db: AsyncSession, user_id: str) -> UserAccount:
    user = (await db.execute(select(UserAccount).where(UserAccount.id == user_id))).scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
