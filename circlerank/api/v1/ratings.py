from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.api.v1.deps import get_user_or_404
from circlerank.core.config import settings
from circlerank.db.session import get_db
from circlerank.schemas.common import MessageResponse
from circlerank.schemas.ratings import RatingIn, RatingOut, RestaurantRatingIn, RestaurantRatingOut
from circlerank.services.aggregates import (
    calculate_user_aggregate_scores,
    calculate_user_restaurant_aggregate_scores,
)
from circlerank.services.auth import AuthUser, get_current_user
from circlerank.services.ratings import (
    delete_rating,
    delete_restaurant_rating,
    list_ratings,
    list_restaurant_ratings,
    upsert_rating,
    upsert_restaurant_rating,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ratings", tags=["ratings"])
restaurant_router = APIRouter(prefix="/restaurant-ratings", tags=["ratings"])


async def _refresh_movie_scores(db: AsyncSession, user_id: str) -> None:
    if not settings.recompute_on_rating_change:
        return
    try:
        await calculate_user_aggregate_scores(db, user_id)
    except Exception:
        # the rating itself is already committed
        logger.exception("Movie aggregate refresh after rating change failed for user=%s", user_id)


async def _refresh_restaurant_scores(db: AsyncSession, user_id: str) -> None:
    if not settings.recompute_on_rating_change:
        return
    try:
        await calculate_user_restaurant_aggregate_scores(db, user_id)
    except Exception:
        logger.exception("Restaurant aggregate refresh after rating change failed for user=%s", user_id)


@router.get("", response_model=list[RatingOut])
async def get_ratings(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
) -> list[RatingOut]:
    await get_user_or_404(db, user_id)
    rows = await list_ratings(db, user_id)
    return [RatingOut(user_id=r.user_id, movie_id=r.movie_id, score=r.score) for r in rows]


@router.put("/{movie_id}", response_model=RatingOut)
async def rate_movie(
    movie_id: str,
    payload: RatingIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> RatingOut:
    row = await upsert_rating(db, user_id=current_user.user_id, movie_id=movie_id, score=payload.score)
    out = RatingOut(user_id=row.user_id, movie_id=row.movie_id, score=row.score)
    await _refresh_movie_scores(db, current_user.user_id)
    return out


@router.delete("/{movie_id}", response_model=MessageResponse)
async def clear_movie_rating(
    movie_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    deleted = await delete_rating(db, user_id=current_user.user_id, movie_id=movie_id)
    if not deleted:
        return MessageResponse(message="Rating not found, nothing to delete")
    await _refresh_movie_scores(db, current_user.user_id)
    return MessageResponse(message="Rating deleted")


@restaurant_router.get("", response_model=list[RestaurantRatingOut])
async def get_restaurant_ratings(
    user_id: str = Query(min_length=1),
    restaurant_id: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[RestaurantRatingOut]:
    await get_user_or_404(db, user_id)
    rows = await list_restaurant_ratings(db, user_id, restaurant_id)
    return [
        RestaurantRatingOut(
            user_id=r.user_id,
            restaurant_id=r.restaurant_id,
            rating_type=r.rating_type,
            score=r.score,
            availability=r.availability,
        )
        for r in rows
    ]


@restaurant_router.put("/{restaurant_id}", response_model=RestaurantRatingOut)
async def rate_restaurant(
    restaurant_id: str,
    payload: RestaurantRatingIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> RestaurantRatingOut:
    row = await upsert_restaurant_rating(
        db,
        user_id=current_user.user_id,
        restaurant_id=restaurant_id,
        rating_type=payload.rating_type,
        score=payload.score,
        availability=payload.availability,
    )
    out = RestaurantRatingOut(
        user_id=row.user_id,
        restaurant_id=row.restaurant_id,
        rating_type=row.rating_type,
        score=row.score,
        availability=row.availability,
    )
    await _refresh_restaurant_scores(db, current_user.user_id)
    return out


@restaurant_router.delete("/{restaurant_id}/{rating_type}", response_model=MessageResponse)
async def clear_restaurant_rating(
    restaurant_id: str,
    rating_type: Literal["VEG", "NON_VEG"],
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    deleted = await delete_restaurant_rating(
        db, user_id=current_user.user_id, restaurant_id=restaurant_id, rating_type=rating_type
    )
    if not deleted:
        return MessageResponse(message="Rating not found, nothing to delete")
    await _refresh_restaurant_scores(db, current_user.user_id)
    return MessageResponse(message="Rating deleted")
