from __future__ import annotations

import logging

from arq.connections import RedisSettings
from arq.cron import cron
from sqlalchemy import select

from circlerank.core.config import settings
from circlerank.core.logging import configure_logging
from circlerank.db.session import SessionLocal
from circlerank.models.user import USER_STATUS_ACTIVE, UserAccount
from circlerank.services.aggregates import (
    calculate_user_aggregate_scores,
    calculate_user_restaurant_aggregate_scores,
)

logger = logging.getLogger(__name__)


async def startup(ctx) -> None:
    configure_logging()


async def recompute_user_aggregates_job(ctx, user_id: str) -> dict:
    async with SessionLocal() as db:
        movies = await calculate_user_aggregate_scores(db, user_id)
        restaurants = await calculate_user_restaurant_aggregate_scores(db, user_id)
    return {
        "user_id": user_id,
        "movies": movies.calculated,
        "restaurants": len(restaurants.results),
    }


async def recompute_all_aggregates_job(ctx) -> dict:
    total = 0
    failed = 0
    async with SessionLocal() as db:
        user_ids = (
            await db.execute(
                select(UserAccount.id).where(UserAccount.status == USER_STATUS_ACTIVE).order_by(UserAccount.id)
            )
        ).scalars().all()

    # each user runs in its own session and transaction
    for user_id in user_ids:
        async with SessionLocal() as db:
            try:
                await calculate_user_aggregate_scores(db, user_id)
                await calculate_user_restaurant_aggregate_scores(db, user_id)
            except Exception:
                logger.exception("Aggregate recomputation failed for user=%s", user_id)
                await db.rollback()
                failed += 1
                continue
        total += 1
    return {"users_recomputed": total, "users_failed": failed}


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    on_startup = startup
    functions = [recompute_user_aggregates_job, recompute_all_aggregates_job]
    cron_jobs = [cron(recompute_all_aggregates_job, hour={3}, minute={0})]
