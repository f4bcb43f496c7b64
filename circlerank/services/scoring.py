"""Friend-weighted score arithmetic shared by the movie and restaurant aggregators.

Nothing here touches the database: callers hand in the friend weight map and
the rating rows they loaded, and get plain result objects back.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from circlerank.models.restaurant import AVAILABILITY_AVAILABLE, RATING_TYPE_NON_VEG, RATING_TYPE_VEG

SELF_WEIGHT = 1.0
FULL_CONFIDENCE_RATINGS = 5


class MovieRatingLike(Protocol):
    user_id: str
    movie_id: str
    score: float | None


class RestaurantRatingLike(Protocol):
    user_id: str
    restaurant_id: str
    rating_type: str
    score: float | None
    availability: str


@dataclass(slots=True, frozen=True)
class TrackScore:
    score: float | None
    count: int


@dataclass(slots=True, frozen=True)
class RestaurantScore:
    restaurant_id: str
    veg_score: float | None
    non_veg_score: float | None
    veg_count: int
    non_veg_count: int
    confidence: float

    @property
    def has_score(self) -> bool:
        return self.veg_score is not None or self.non_veg_score is not None


def round_half_up(value: float, places: int = 2) -> float:
    # not banker's rounding
    return float(Decimal(repr(value)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def round2(value: float) -> float:
    return round_half_up(value, 2)


def weighted_average(pairs: Iterable[tuple[float, float]]) -> float | None:
    """Return sum(score * weight) / sum(weight) over ``(score, weight)`` pairs.

    ``None`` when the total weight is not positive, so a zero-weight
    contributor adds nothing to either side of the fraction.
    """
    total_weighted = 0.0
    total_weight = 0.0
    for score, weight in pairs:
        total_weighted += score * weight
        total_weight += weight
    if total_weight <= 0:
        return None
    return total_weighted / total_weight


def contributor_weight(user_id: str, rater_id: str, friend_weights: Mapping[str, float]) -> float | None:
    if rater_id == user_id:
        return SELF_WEIGHT
    return friend_weights.get(rater_id)


def group_by(rows: Iterable, attr: str) -> dict[str, list]:
    grouped: dict[str, list] = defaultdict(list)
    for row in rows:
        grouped[getattr(row, attr)].append(row)
    return grouped


def compute_movie_scores(
    user_id: str,
    friend_weights: Mapping[str, float],
    ratings: Iterable[MovieRatingLike],
    movie_ids: Iterable[str],
) -> dict[str, float]:
    """Personalized score per movie for ``user_id``.

    The user's own rating counts at ``SELF_WEIGHT``; friends count at their
    configured weight; anyone else is ignored. A score of 0 or ``None`` means
    "not rated". Movies with no positive total weight are left out.
    """
    by_movie = group_by(ratings, "movie_id")
    out: dict[str, float] = {}
    for movie_id in movie_ids:
        pairs = []
        for rating in by_movie.get(movie_id, []):
            if not rating.score:
                continue
            weight = contributor_weight(user_id, rating.user_id, friend_weights)
            if weight is None:
                continue
            pairs.append((float(rating.score), float(weight)))
        score = weighted_average(pairs)
        if score is not None:
            out[movie_id] = score
    return out


def compute_track(
    user_id: str,
    friend_weights: Mapping[str, float],
    ratings: Iterable[RestaurantRatingLike],
) -> TrackScore:
    """Aggregate one dietary track of one restaurant.

    Only AVAILABLE rows with a score count. Friends at weight 0 or outside
    ``friend_weights`` are dropped entirely. When the only contributor left is
    the user, their score is used as-is with a count of 1.
    """
    contributing: list[tuple[RestaurantRatingLike, float]] = []
    for rating in ratings:
        if rating.availability != AVAILABILITY_AVAILABLE or rating.score is None:
            continue
        weight = contributor_weight(user_id, rating.user_id, friend_weights)
        if weight is None or weight <= 0:
            continue
        contributing.append((rating, float(weight)))

    if not contributing:
        return TrackScore(score=None, count=0)

    own = [r for r, _ in contributing if r.user_id == user_id]
    if own and len(own) == len(contributing):
        return TrackScore(score=float(own[0].score), count=1)

    score = weighted_average((float(r.score), w) for r, w in contributing)
    if score is None:
        return TrackScore(score=None, count=0)
    return TrackScore(score=score, count=len(contributing))


def compute_confidence(veg_count: int, non_veg_count: int) -> float:
    return round2(min((veg_count + non_veg_count) / FULL_CONFIDENCE_RATINGS, 1.0))


def compute_restaurant_score(
    user_id: str,
    restaurant_id: str,
    friend_weights: Mapping[str, float],
    ratings: Iterable[RestaurantRatingLike],
) -> RestaurantScore:
    tracks = group_by(ratings, "rating_type")
    veg = compute_track(user_id, friend_weights, tracks.get(RATING_TYPE_VEG, []))
    non_veg = compute_track(user_id, friend_weights, tracks.get(RATING_TYPE_NON_VEG, []))
    return RestaurantScore(
        restaurant_id=restaurant_id,
        veg_score=round2(veg.score) if veg.score is not None else None,
        non_veg_score=round2(non_veg.score) if non_veg.score is not None else None,
        veg_count=veg.count,
        non_veg_count=non_veg.count,
        confidence=compute_confidence(veg.count, non_veg.count),
    )


@dataclass(slots=True, frozen=True)
class PublicScore:
    movie_id: str
    score: float
    user_count: int


@dataclass(slots=True, frozen=True)
class GroupScore:
    movie_id: str
    score: float | None
    rating_count: int


def compute_public_scores(ratings: Iterable[MovieRatingLike]) -> list[PublicScore]:
    """Equal-weight mean per movie over every rating handed in, 2 decimals."""
    out = []
    for movie_id, rows in group_by((r for r in ratings if r.score), "movie_id").items():
        mean = sum(float(r.score) for r in rows) / len(rows)
        out.append(PublicScore(movie_id=movie_id, score=round2(mean), user_count=len(rows)))
    return out


def compute_group_scores(
    ratings: Iterable[MovieRatingLike],
    movie_ids: Iterable[str],
    *,
    only_rated: bool,
) -> list[GroupScore]:
    by_movie = group_by((r for r in ratings if r.score), "movie_id")
    out = []
    for movie_id in movie_ids:
        rows = by_movie.get(movie_id, [])
        if not rows and only_rated:
            continue
        mean = round_half_up(sum(float(r.score) for r in rows) / len(rows), 1) if rows else None
        out.append(GroupScore(movie_id=movie_id, score=mean, rating_count=len(rows)))
    return out
