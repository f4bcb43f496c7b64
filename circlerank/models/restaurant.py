from __future__ import annotations

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from circlerank.db.base import Base
from circlerank.models.common import TimestampMixin, new_id

RATING_TYPE_VEG = "VEG"
RATING_TYPE_NON_VEG = "NON_VEG"
AVAILABILITY_AVAILABLE = "AVAILABLE"
AVAILABILITY_NOT_AVAILABLE = "NOT_AVAILABLE"


class Restaurant(TimestampMixin, Base):
    __tablename__ = "restaurants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    location: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    cuisine: Mapped[str] = mapped_column(String(200), default="", nullable=False)


class RestaurantRating(TimestampMixin, Base):
    __tablename__ = "restaurant_ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "restaurant_id", "rating_type", name="uq_restaurant_rating_track"),
        CheckConstraint("rating_type in ('VEG','NON_VEG')", name="ck_restaurant_rating_type"),
        CheckConstraint(
            "availability in ('AVAILABLE','NOT_AVAILABLE')",
            name="ck_restaurant_rating_availability",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    restaurant_id: Mapped[str] = mapped_column(ForeignKey("restaurants.id", ondelete="CASCADE"), index=True)
    rating_type: Mapped[str] = mapped_column(String(20), nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    availability: Mapped[str] = mapped_column(String(20), default=AVAILABILITY_AVAILABLE, nullable=False)


class RestaurantWeightPreference(TimestampMixin, Base):
    __tablename__ = "restaurant_weight_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_restaurant_weight_pref_pair"),
        CheckConstraint("user_id <> friend_id", name="ck_restaurant_weight_pref_self"),
        CheckConstraint("weight >= 0", name="ck_restaurant_weight_pref_weight"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    friend_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    weight: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)


class RestaurantAggregateScore(TimestampMixin, Base):
    __tablename__ = "restaurant_aggregate_scores"
    __table_args__ = (
        UniqueConstraint("user_id", "restaurant_id", name="uq_restaurant_aggregate_user_restaurant"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    restaurant_id: Mapped[str] = mapped_column(ForeignKey("restaurants.id", ondelete="CASCADE"), index=True)
    veg_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    non_veg_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    veg_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    non_veg_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
