from __future__ import annotations

from pydantic import BaseModel, Field


class WeightPreferenceIn(BaseModel):
    friend_id: str = Field(min_length=1)
    weight: float = Field(ge=0, le=2)


class WeightPreferenceOut(BaseModel):
    user_id: str
    friend_id: str
    weight: float


class RestaurantWeightPreferenceOut(WeightPreferenceOut):
    friend_name: str = ""
    friend_status: str = "ACTIVE"


class BulkWeightPreferenceIn(BaseModel):
    friend_ids: list[str] = Field(default_factory=list)
    is_friend: bool
    weight: float = Field(default=1.0, ge=0, le=2)
