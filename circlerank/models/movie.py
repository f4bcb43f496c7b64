from __future__ import annotations

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from circlerank.db.base import Base
from circlerank.models.common import TimestampMixin, new_id


class Movie(TimestampMixin, Base):
    __tablename__ = "movies"
    __table_args__ = (
        CheckConstraint("category in ('MOVIE','SERIES','DOCUMENTARY')", name="ck_movie_category"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tmdb_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(20), default="MOVIE", nullable=False)


class Rating(TimestampMixin, Base):
    __tablename__ = "ratings"
    __table_args__ = (UniqueConstraint("user_id", "movie_id", name="uq_rating_user_movie"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    movie_id: Mapped[str] = mapped_column(ForeignKey("movies.id", ondelete="CASCADE"), index=True)
    score: Mapped[float] = mapped_column(Float, nullable=False)


class WeightPreference(TimestampMixin, Base):
    __tablename__ = "weight_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_weight_pref_pair"),
        CheckConstraint("user_id <> friend_id", name="ck_weight_pref_self"),
        CheckConstraint("weight >= 0", name="ck_weight_pref_weight"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    friend_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    weight: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)


class AggregateScore(TimestampMixin, Base):
    __tablename__ = "aggregate_scores"
    __table_args__ = (UniqueConstraint("user_id", "movie_id", name="uq_aggregate_user_movie"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    movie_id: Mapped[str] = mapped_column(ForeignKey("movies.id", ondelete="CASCADE"), index=True)
    score: Mapped[float] = mapped_column(Float, nullable=False)
