from fastapi import APIRouter

from app.api.routes import (
    analytics,
    characters,
    child_profiles,
    illustrations,
    login,
    reading_progress,
    recommendations,
    stories,
    subscription,
    users,
    utils,
)

api_router = APIRouter()
api_router.include_router(login.router)
api_router.include_router(users.router)
api_router.include_router(utils.router)
api_router.include_router(child_profiles.router)
api_router.include_router(characters.router)
api_router.include_router(stories.router)
api_router.include_router(illustrations.router)
api_router.include_router(reading_progress.router)
api_router.include_router(analytics.router)
api_router.include_router(recommendations.router)
api_router.include_router(subscription.router)
