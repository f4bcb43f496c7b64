from fastapi import APIRouter

from circlerank.api.v1.preferences import restaurant_router as restaurant_preferences_router
from circlerank.api.v1.preferences import router as preferences_router
from circlerank.api.v1.ratings import restaurant_router as restaurant_ratings_router
from circlerank.api.v1.ratings import router as ratings_router
from circlerank.api.v1.scores import group_router as group_summary_router
from circlerank.api.v1.scores import public_router as public_scores_router
from circlerank.api.v1.scores import restaurant_router as restaurant_scores_router
from circlerank.api.v1.scores import router as scores_router

api_router = APIRouter()
api_router.include_router(preferences_router)
api_router.include_router(restaurant_preferences_router)
api_router.include_router(ratings_router)
api_router.include_router(restaurant_ratings_router)
api_router.include_router(scores_router)
api_router.include_router(restaurant_scores_router)
api_router.include_router(public_scores_router)
api_router.include_router(group_summary_router)
