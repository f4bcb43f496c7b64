from __future__ import annotations

from pydantic import BaseModel, Field


class AggregateScoreOut(BaseModel):
    movie_id: str
    score: float


class MovieScoreRecalcOut(BaseModel):
    message: str
    calculated: int = 0


class RestaurantAggregateScoreOut(BaseModel):
    restaurant_id: str
    veg_score: float | None = None
    non_veg_score: float | None = None
    veg_count: int = 0
    non_veg_count: int = 0
    confidence: float = 0.0


class RestaurantScoreRecalcOut(BaseModel):
    success: bool
    message: str
    results: list[RestaurantAggregateScoreOut] = Field(default_factory=list)


class PublicAggregateScoreOut(BaseModel):
    movie_id: str
    score: float
    user_count: int


class GroupRatingOut(BaseModel):
    score: float
    user_name: str


class GroupSummaryOut(BaseModel):
    movie_id: str
    title: str
    year: int | None = None
    category: str | None = None
    tmdb_id: str | None = None
    score: float | None = None
    rating_count: int = 0
    ratings: list[GroupRatingOut] = Field(default_factory=list)
