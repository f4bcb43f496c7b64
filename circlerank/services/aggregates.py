from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.models.movie import AggregateScore, Movie, Rating, WeightPreference
from circlerank.models.restaurant import (
    AVAILABILITY_AVAILABLE,
    Restaurant,
    RestaurantAggregateScore,
    RestaurantRating,
    RestaurantWeightPreference,
)
from circlerank.models.user import USER_STATUS_ACTIVE, UserAccount
from circlerank.schemas.scores import (
    AggregateScoreOut,
    GroupRatingOut,
    GroupSummaryOut,
    MovieScoreRecalcOut,
    PublicAggregateScoreOut,
    RestaurantAggregateScoreOut,
    RestaurantScoreRecalcOut,
)
from circlerank.services.scoring import (
    RestaurantScore,
    compute_group_scores,
    compute_movie_scores,
    compute_public_scores,
    compute_restaurant_score,
    group_by,
)

logger = logging.getLogger(__name__)

# one in-flight recomputation per (domain, user); other users never wait.
# entries are dropped once nobody holds or waits on them.
_recompute_locks: dict[str, tuple[asyncio.Lock, int]] = {}


@asynccontextmanager
async def _recompute_guard(domain: str, user_id: str) -> AsyncIterator[None]:
    key = f"{domain}:{user_id}"
    lock, holders = _recompute_locks.get(key, (None, 0))
    if lock is None:
        lock = asyncio.Lock()
    _recompute_locks[key] = (lock, holders + 1)
    try:
        async with lock:
            yield
    finally:
        lock, holders = _recompute_locks[key]
        if holders <= 1:
            del _recompute_locks[key]
        else:
            _recompute_locks[key] = (lock, holders - 1)


def _require_user_id(user_id: str | None, what: str) -> str:
    clean = (user_id or "").strip()
    if not clean:
        raise ValueError(f"User ID is required to calculate {what}.")
    return clean


async def _replace_movie_scores(db: AsyncSession, user_id: str, scores: dict[str, float]) -> None:
    try:
        await db.execute(delete(AggregateScore).where(AggregateScore.user_id == user_id))
        db.add_all(
            AggregateScore(user_id=user_id, movie_id=movie_id, score=score)
            for movie_id, score in scores.items()
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def calculate_user_aggregate_scores(db: AsyncSession, user_id: str) -> MovieScoreRecalcOut:
    user_id = _require_user_id(user_id, "scores")

    async with _recompute_guard("movies", user_id):
        prefs = (
            await db.execute(select(WeightPreference).where(WeightPreference.user_id == user_id))
        ).scalars().all()

        if not prefs:
            await _replace_movie_scores(db, user_id, {})
            logger.info("No movie friends selected for user=%s; aggregate scores cleared", user_id)
            return MovieScoreRecalcOut(message="No friends selected. Scores cleared.", calculated=0)

        friend_weights = {p.friend_id: float(p.weight) for p in prefs}
        contributors = [*friend_weights.keys(), user_id]

        ratings = (await db.execute(select(Rating).where(Rating.user_id.in_(contributors)))).scalars().all()
        movie_ids = (await db.execute(select(Movie.id))).scalars().all()

        scores = compute_movie_scores(user_id, friend_weights, ratings, movie_ids)
        await _replace_movie_scores(db, user_id, scores)

    logger.info("Calculated movie aggregate scores for user=%s: %d movies", user_id, len(scores))
    return MovieScoreRecalcOut(message=f"Calculated scores for {len(scores)} movies.", calculated=len(scores))


async def _active_restaurant_friend_weights(db: AsyncSession, user_id: str) -> dict[str, float]:
    rows = (
        await db.execute(
            select(RestaurantWeightPreference.friend_id, RestaurantWeightPreference.weight)
            .join(UserAccount, UserAccount.id == RestaurantWeightPreference.friend_id)
            .where(
                RestaurantWeightPreference.user_id == user_id,
                UserAccount.status == USER_STATUS_ACTIVE,
            )
        )
    ).all()
    return {friend_id: float(weight) for friend_id, weight in rows}


def _restaurant_out(score: RestaurantScore) -> RestaurantAggregateScoreOut:
    return RestaurantAggregateScoreOut(
        restaurant_id=score.restaurant_id,
        veg_score=score.veg_score,
        non_veg_score=score.non_veg_score,
        veg_count=score.veg_count,
        non_veg_count=score.non_veg_count,
        confidence=score.confidence,
    )


async def calculate_user_restaurant_aggregate_scores(db: AsyncSession, user_id: str) -> RestaurantScoreRecalcOut:
    user_id = _require_user_id(user_id, "restaurant scores")

    async with _recompute_guard("restaurants", user_id):
        friend_weights = await _active_restaurant_friend_weights(db, user_id)
        contributors = [*friend_weights.keys(), user_id]

        ratings = (
            await db.execute(
                select(RestaurantRating).where(
                    RestaurantRating.user_id.in_(contributors),
                    RestaurantRating.availability == AVAILABILITY_AVAILABLE,
                    RestaurantRating.score.is_not(None),
                )
            )
        ).scalars().all()
        ratings_by_restaurant = group_by(ratings, "restaurant_id")

        restaurant_ids = (await db.execute(select(Restaurant.id))).scalars().all()
        existing = {
            row.restaurant_id: row
            for row in (
                await db.execute(
                    select(RestaurantAggregateScore).where(RestaurantAggregateScore.user_id == user_id)
                )
            ).scalars().all()
        }

        results: list[RestaurantAggregateScoreOut] = []
        try:
            for restaurant_id in restaurant_ids:
                computed = compute_restaurant_score(
                    user_id,
                    restaurant_id,
                    friend_weights,
                    ratings_by_restaurant.get(restaurant_id, []),
                )
                if not computed.has_score:
                    continue

                row = existing.pop(restaurant_id, None)
                if row is None:
                    row = RestaurantAggregateScore(user_id=user_id, restaurant_id=restaurant_id)
                    db.add(row)
                row.veg_score = computed.veg_score
                row.non_veg_score = computed.non_veg_score
                row.veg_count = computed.veg_count
                row.non_veg_count = computed.non_veg_count
                row.confidence = computed.confidence
                results.append(_restaurant_out(computed))

            # whatever is left no longer scores on either track
            for stale in existing.values():
                await db.delete(stale)

            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.info(
        "Calculated restaurant aggregate scores for user=%s: %d restaurants, %d cleared",
        user_id,
        len(results),
        len(existing),
    )
    if not results:
        message = (
            "No restaurant scores calculated. Please rate some restaurants first "
            "or select friends who have rated restaurants."
        )
    else:
        message = f"Calculated scores for {len(results)} restaurants."
    return RestaurantScoreRecalcOut(success=True, message=message, results=results)


async def list_aggregate_scores(db: AsyncSession, user_id: str) -> list[AggregateScoreOut]:
    rows = (
        await db.execute(select(AggregateScore).where(AggregateScore.user_id == user_id))
    ).scalars().all()
    return [AggregateScoreOut(movie_id=row.movie_id, score=row.score) for row in rows]


async def list_restaurant_aggregate_scores(db: AsyncSession, user_id: str) -> list[RestaurantAggregateScoreOut]:
    rows = (
        await db.execute(
            select(RestaurantAggregateScore).where(RestaurantAggregateScore.user_id == user_id)
        )
    ).scalars().all()
    return [
        RestaurantAggregateScoreOut(
            restaurant_id=row.restaurant_id,
            veg_score=row.veg_score,
            non_veg_score=row.non_veg_score,
            veg_count=row.veg_count,
            non_veg_count=row.non_veg_count,
            confidence=row.confidence,
        )
        for row in rows
    ]


async def list_public_aggregate_scores(db: AsyncSession) -> list[PublicAggregateScoreOut]:
    """Every active user counts once, whatever anyone's friend weights say."""
    ratings = (
        await db.execute(
            select(Rating)
            .join(UserAccount, UserAccount.id == Rating.user_id)
            .where(UserAccount.status == USER_STATUS_ACTIVE)
        )
    ).scalars().all()
    return [
        PublicAggregateScoreOut(movie_id=s.movie_id, score=s.score, user_count=s.user_count)
        for s in compute_public_scores(ratings)
    ]


async def summarize_group(db: AsyncSession, user_ids: list[str] | None = None) -> list[GroupSummaryOut]:
    """Plain average per movie over the ratings of ``user_ids`` (everyone when empty).

    With a non-empty ``user_ids`` movies nobody in the group rated are left out.
    """
    members = sorted({uid.strip() for uid in user_ids or [] if uid and uid.strip()})

    stmt = select(Rating, UserAccount.name).join(UserAccount, UserAccount.id == Rating.user_id)
    if members:
        stmt = stmt.where(Rating.user_id.in_(members))
    rows = (await db.execute(stmt.order_by(UserAccount.name.asc()))).all()

    movies = (await db.execute(select(Movie).order_by(Movie.title.asc()))).scalars().all()
    by_id = {movie.id: movie for movie in movies}
    ratings_by_movie = group_by((rating for rating, _ in rows), "movie_id")
    rater_names = {rating.id: name for rating, name in rows}

    out: list[GroupSummaryOut] = []
    for group in compute_group_scores((r for r, _ in rows), by_id.keys(), only_rated=bool(members)):
        movie = by_id[group.movie_id]
        out.append(
            GroupSummaryOut(
                movie_id=movie.id,
                title=movie.title,
                year=movie.year,
                category=movie.category,
                tmdb_id=movie.tmdb_id,
                score=group.score,
                rating_count=group.rating_count,
                ratings=[
                    GroupRatingOut(score=r.score, user_name=rater_names[r.id])
                    for r in ratings_by_movie.get(movie.id, [])
                    if r.score
                ],
            )
        )
    return out
