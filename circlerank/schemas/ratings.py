from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class RatingIn(BaseModel):
    score: float = Field(ge=0.5, le=10)


class RatingOut(BaseModel):
    user_id: str
    movie_id: str
    score: float


class RestaurantRatingIn(BaseModel):
    rating_type: Literal["VEG", "NON_VEG"]
    availability: Literal["AVAILABLE", "NOT_AVAILABLE"] = "AVAILABLE"
    score: float | None = Field(default=None, ge=0.5, le=10)

    @model_validator(mode="after")
    def _score_matches_availability(self) -> "RestaurantRatingIn":
        if self.availability == "NOT_AVAILABLE":
            self.score = None
        elif self.score is None:
            raise ValueError("score is required when the track is AVAILABLE")
        return self


class RestaurantRatingOut(BaseModel):
    user_id: str
    restaurant_id: str
    rating_type: str
    score: float | None = None
    availability: str
