from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.api.v1.deps import get_user_or_404
from circlerank.db.session import get_db
from circlerank.models.movie import WeightPreference
from circlerank.models.restaurant import RestaurantWeightPreference
from circlerank.schemas.common import MessageResponse
from circlerank.schemas.preferences import (
    BulkWeightPreferenceIn,
    RestaurantWeightPreferenceOut,
    WeightPreferenceIn,
    WeightPreferenceOut,
)
from circlerank.services.auth import AuthUser, get_current_user, get_optional_user
from circlerank.services.preferences import (
    bulk_set_preferences,
    delete_preference,
    ensure_restaurant_defaults,
    list_preferences,
    list_restaurant_preferences_with_friends,
    upsert_preference,
)

router = APIRouter(prefix="/weight-preferences", tags=["weight-preferences"])
restaurant_router = APIRouter(prefix="/restaurant-weight-preferences", tags=["weight-preferences"])


def _to_out(row: WeightPreference | RestaurantWeightPreference) -> WeightPreferenceOut:
    return WeightPreferenceOut(user_id=row.user_id, friend_id=row.friend_id, weight=row.weight)


@router.get("", response_model=list[WeightPreferenceOut])
async def get_weight_preferences(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
) -> list[WeightPreferenceOut]:
    await get_user_or_404(db, user_id)
    rows = await list_preferences(db, WeightPreference, user_id)
    return [_to_out(row) for row in rows]


@router.post("", response_model=WeightPreferenceOut)
async def save_weight_preference(
    payload: WeightPreferenceIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> WeightPreferenceOut:
    row = await upsert_preference(
        db,
        WeightPreference,
        user_id=current_user.user_id,
        friend_id=payload.friend_id,
        weight=payload.weight,
    )
    return _to_out(row)


@router.delete("/{friend_id}", response_model=MessageResponse)
async def remove_weight_preference(
    friend_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    deleted = await delete_preference(db, WeightPreference, user_id=current_user.user_id, friend_id=friend_id)
    if not deleted:
        return MessageResponse(message="Preference not found, nothing to delete")
    return MessageResponse(message="Preference deleted")


@router.post("/bulk", response_model=MessageResponse)
async def bulk_weight_preferences(
    payload: BulkWeightPreferenceIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    await bulk_set_preferences(
        db,
        WeightPreference,
        user_id=current_user.user_id,
        friend_ids=payload.friend_ids,
        include=payload.is_friend,
        weight=payload.weight,
    )
    return MessageResponse(message="Bulk update successful")


@restaurant_router.get("", response_model=list[RestaurantWeightPreferenceOut])
async def get_restaurant_weight_preferences(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser | None = Depends(get_optional_user),
) -> list[RestaurantWeightPreferenceOut]:
    await get_user_or_404(db, user_id)
    # only the owner's own read seeds their defaults
    if current_user is not None and current_user.user_id == user_id:
        await ensure_restaurant_defaults(db, user_id)
    rows = await list_restaurant_preferences_with_friends(db, user_id)
    return [
        RestaurantWeightPreferenceOut(
            user_id=pref.user_id,
            friend_id=pref.friend_id,
            weight=pref.weight,
            friend_name=friend.name,
            friend_status=friend.status,
        )
        for pref, friend in rows
    ]


@restaurant_router.post("", response_model=WeightPreferenceOut)
async def save_restaurant_weight_preference(
    payload: WeightPreferenceIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> WeightPreferenceOut:
    row = await upsert_preference(
        db,
        RestaurantWeightPreference,
        user_id=current_user.user_id,
        friend_id=payload.friend_id,
        weight=payload.weight,
    )
    return _to_out(row)


@restaurant_router.delete("/{friend_id}", response_model=MessageResponse)
async def remove_restaurant_weight_preference(
    friend_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    deleted = await delete_preference(
        db, RestaurantWeightPreference, user_id=current_user.user_id, friend_id=friend_id
    )
    if not deleted:
        return MessageResponse(message="Preference not found, nothing to delete")
    return MessageResponse(message="Preference deleted")


@restaurant_router.post("/bulk", response_model=MessageResponse)
async def bulk_restaurant_weight_preferences(
    payload: BulkWeightPreferenceIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    await bulk_set_preferences(
        db,
        RestaurantWeightPreference,
        user_id=current_user.user_id,
        friend_ids=payload.friend_ids,
        include=payload.is_friend,
        weight=payload.weight,
        overwrite=True,
    )
    return MessageResponse(message="Bulk update successful")
