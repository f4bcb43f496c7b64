from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.api.v1.deps import get_user_or_404
from circlerank.db.session import get_db
from circlerank.schemas.scores import (
    AggregateScoreOut,
    GroupSummaryOut,
    MovieScoreRecalcOut,
    PublicAggregateScoreOut,
    RestaurantAggregateScoreOut,
    RestaurantScoreRecalcOut,
)
from circlerank.services.aggregates import (
    calculate_user_aggregate_scores,
    calculate_user_restaurant_aggregate_scores,
    list_aggregate_scores,
    list_public_aggregate_scores,
    list_restaurant_aggregate_scores,
    summarize_group,
)
from circlerank.services.auth import AuthUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/aggregate-scores", tags=["scores"])
restaurant_router = APIRouter(prefix="/restaurant-aggregate-scores", tags=["scores"])
public_router = APIRouter(prefix="/public-aggregate-scores", tags=["scores"])
group_router = APIRouter(prefix="/group-summary", tags=["scores"])


@router.get("", response_model=list[AggregateScoreOut])
async def get_aggregate_scores(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
) -> list[AggregateScoreOut]:
    await get_user_or_404(db, user_id)
    return await list_aggregate_scores(db, user_id)


@router.post("/calculate", response_model=MovieScoreRecalcOut)
async def calculate_aggregate_scores(
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> MovieScoreRecalcOut:
    try:
        return await calculate_user_aggregate_scores(db, current_user.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Movie aggregate recomputation failed for user=%s", current_user.user_id)
        raise HTTPException(status_code=500, detail="Failed to calculate aggregate scores") from exc


@restaurant_router.get("", response_model=list[RestaurantAggregateScoreOut])
async def get_restaurant_aggregate_scores(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
) -> list[RestaurantAggregateScoreOut]:
    await get_user_or_404(db, user_id)
    return await list_restaurant_aggregate_scores(db, user_id)


@restaurant_router.post("/calculate", response_model=RestaurantScoreRecalcOut)
async def calculate_restaurant_aggregate_scores(
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> RestaurantScoreRecalcOut:
    try:
        return await calculate_user_restaurant_aggregate_scores(db, current_user.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Restaurant aggregate recomputation failed for user=%s", current_user.user_id)
        raise HTTPException(status_code=500, detail="Failed to calculate restaurant aggregate scores") from exc


@public_router.get("", response_model=list[PublicAggregateScoreOut])
async def get_public_aggregate_scores(db: AsyncSession = Depends(get_db)) -> list[PublicAggregateScoreOut]:
    return await list_public_aggregate_scores(db)


@group_router.get("", response_model=list[GroupSummaryOut])
async def get_group_summary(
    user_ids: str | None = Query(default=None, description="Comma-separated user ids"),
    db: AsyncSession = Depends(get_db),
) -> list[GroupSummaryOut]:
    members = [uid for uid in (user_ids or "").split(",") if uid.strip()]
    return await summarize_group(db, members)
