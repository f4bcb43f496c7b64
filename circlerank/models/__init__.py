from circlerank.models.movie import AggregateScore, Movie, Rating, WeightPreference
from circlerank.models.restaurant import (
    Restaurant,
    RestaurantAggregateScore,
    RestaurantRating,
    RestaurantWeightPreference,
)
from circlerank.models.user import UserAccount

__all__ = [
    "AggregateScore",
    "Movie",
    "Rating",
    "Restaurant",
    "RestaurantAggregateScore",
    "RestaurantRating",
    "RestaurantWeightPreference",
    "UserAccount",
    "WeightPreference",
]
