from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.models.movie import WeightPreference
from circlerank.models.restaurant import RestaurantWeightPreference
from circlerank.models.user import USER_STATUS_ACTIVE, UserAccount

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1.0

PreferenceModel = type[WeightPreference] | type[RestaurantWeightPreference]


async def _ensure_friend(db: AsyncSession, user_id: str, friend_id: str) -> UserAccount:
    if user_id == friend_id:
        raise HTTPException(status_code=400, detail="Cannot weight yourself")
    friend = (await db.execute(select(UserAccount).where(UserAccount.id == friend_id))).scalar_one_or_none()
    if friend is None:
        raise HTTPException(status_code=404, detail="Friend not found")
    return friend


async def list_preferences(db: AsyncSession, model: PreferenceModel, user_id: str) -> list:
    return list(
        (await db.execute(select(model).where(model.user_id == user_id).order_by(model.created_at.asc())))
        .scalars()
        .all()
    )


async def list_restaurant_preferences_with_friends(
    db: AsyncSession, user_id: str
) -> list[tuple[RestaurantWeightPreference, UserAccount]]:
    rows = (
        await db.execute(
            select(RestaurantWeightPreference, UserAccount)
            .join(UserAccount, UserAccount.id == RestaurantWeightPreference.friend_id)
            .where(RestaurantWeightPreference.user_id == user_id)
            .order_by(UserAccount.name.asc())
        )
    ).all()
    return [(pref, friend) for pref, friend in rows]


async def upsert_preference(
    db: AsyncSession,
    model: PreferenceModel,
    *,
    user_id: str,
    friend_id: str,
    weight: float,
):
    await _ensure_friend(db, user_id, friend_id)
    row = (
        await db.execute(select(model).where(model.user_id == user_id, model.friend_id == friend_id))
    ).scalar_one_or_none()
    if row is None:
        row = model(user_id=user_id, friend_id=friend_id, weight=weight)
        db.add(row)
    else:
        row.weight = weight
    await db.commit()
    await db.refresh(row)
    return row


async def delete_preference(db: AsyncSession, model: PreferenceModel, *, user_id: str, friend_id: str) -> bool:
    result = await db.execute(delete(model).where(model.user_id == user_id, model.friend_id == friend_id))
    await db.commit()
    return bool(result.rowcount)


async def bulk_set_preferences(
    db: AsyncSession,
    model: PreferenceModel,
    *,
    user_id: str,
    friend_ids: list[str],
    include: bool,
    weight: float = DEFAULT_WEIGHT,
    overwrite: bool = False,
) -> int:
    """Include or exclude many friends at once; returns the number of rows touched.

    With ``include`` missing pairs are created at ``weight``; existing pairs
    keep their weight unless ``overwrite`` is set. Unknown ids and the user's
    own id are skipped.
    """
    wanted = sorted({fid for fid in friend_ids if fid and fid != user_id})
    if not wanted:
        return 0

    if not include:
        result = await db.execute(delete(model).where(model.user_id == user_id, model.friend_id.in_(wanted)))
        await db.commit()
        return int(result.rowcount or 0)

    known = set((await db.execute(select(UserAccount.id).where(UserAccount.id.in_(wanted)))).scalars().all())
    existing = {
        row.friend_id: row
        for row in (
            await db.execute(select(model).where(model.user_id == user_id, model.friend_id.in_(sorted(known))))
        ).scalars().all()
    }
    touched = 0
    for friend_id in sorted(known):
        row = existing.get(friend_id)
        if row is None:
            db.add(model(user_id=user_id, friend_id=friend_id, weight=weight))
            touched += 1
        elif overwrite and row.weight != weight:
            row.weight = weight
            touched += 1
    await db.commit()
    return touched


async def ensure_restaurant_defaults(db: AsyncSession, user_id: str) -> int:
    """First run: include every other active user at full weight."""
    has_any = (
        await db.execute(
            select(RestaurantWeightPreference.id).where(RestaurantWeightPreference.user_id == user_id).limit(1)
        )
    ).scalar_one_or_none()
    if has_any is not None:
        return 0

    others = (
        await db.execute(
            select(UserAccount.id).where(UserAccount.id != user_id, UserAccount.status == USER_STATUS_ACTIVE)
        )
    ).scalars().all()
    if not others:
        return 0

    db.add_all(
        RestaurantWeightPreference(user_id=user_id, friend_id=friend_id, weight=DEFAULT_WEIGHT)
        for friend_id in others
    )
    await db.commit()
    logger.info("Initialized %d default restaurant friend weights for user=%s", len(others), user_id)
    return len(others)
