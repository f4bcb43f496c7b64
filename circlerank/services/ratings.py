from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from circlerank.models.movie import Movie, Rating
from circlerank.models.restaurant import AVAILABILITY_NOT_AVAILABLE, Restaurant, RestaurantRating


async def list_ratings(db: AsyncSession, user_id: str) -> list[Rating]:
    return list((await db.execute(select(Rating).where(Rating.user_id == user_id))).scalars().all())


async def upsert_rating(db: AsyncSession, *, user_id: str, movie_id: str, score: float) -> Rating:
    movie = (await db.execute(select(Movie.id).where(Movie.id == movie_id))).scalar_one_or_none()
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")

    row = (
        await db.execute(select(Rating).where(Rating.user_id == user_id, Rating.movie_id == movie_id))
    ).scalar_one_or_none()
    if row is None:
        row = Rating(user_id=user_id, movie_id=movie_id, score=score)
        db.add(row)
    else:
        row.score = score
    await db.commit()
    await db.refresh(row)
    return row


async def delete_rating(db: AsyncSession, *, user_id: str, movie_id: str) -> bool:
    result = await db.execute(delete(Rating).where(Rating.user_id == user_id, Rating.movie_id == movie_id))
    await db.commit()
    return bool(result.rowcount)


async def list_restaurant_ratings(
    db: AsyncSession, user_id: str, restaurant_id: str | None = None
) -> list[RestaurantRating]:
    stmt = select(RestaurantRating).where(RestaurantRating.user_id == user_id)
    if restaurant_id:
        stmt = stmt.where(RestaurantRating.restaurant_id == restaurant_id)
    return list((await db.execute(stmt)).scalars().all())


async def upsert_restaurant_rating(
    db: AsyncSession,
    *,
    user_id: str,
    restaurant_id: str,
    rating_type: str,
    score: float | None,
    availability: str,
) -> RestaurantRating:
    restaurant = (
        await db.execute(select(Restaurant.id).where(Restaurant.id == restaurant_id))
    ).scalar_one_or_none()
    if restaurant is None:
        raise HTTPException(status_code=404, detail="Restaurant not found")

    final_score = None if availability == AVAILABILITY_NOT_AVAILABLE else score
    row = (
        await db.execute(
            select(RestaurantRating).where(
                RestaurantRating.user_id == user_id,
                RestaurantRating.restaurant_id == restaurant_id,
                RestaurantRating.rating_type == rating_type,
            )
        )
    ).scalar_one_or_none()
    if row is None:
        row = RestaurantRating(
            user_id=user_id,
            restaurant_id=restaurant_id,
            rating_type=rating_type,
            score=final_score,
            availability=availability,
        )
        db.add(row)
    else:
        row.score = final_score
        row.availability = availability
    await db.commit()
    await db.refresh(row)
    return row


async def delete_restaurant_rating(db: AsyncSession, *, user_id: str, restaurant_id: str, rating_type: str) -> bool:
    result = await db.execute(
        delete(RestaurantRating).where(
            RestaurantRating.user_id == user_id,
            RestaurantRating.restaurant_id == restaurant_id,
            RestaurantRating.rating_type == rating_type,
        )
    )
    await db.commit()
    return bool(result.rowcount)
