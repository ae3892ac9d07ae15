import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from app import analytics, crud
from app.analytics_cache import analytics_cache
from app.api.deps import CurrentUser, SessionDep, get_current_active_superuser
from app.models import AnalyticsEvent, Message, RealTimeAnalysisRequest

router = APIRouter(prefix="/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)

EVENT_TYPES = {"story-generation", "user-interaction"}


@router.get("/characters/{id}/consistency", response_model=analytics.ConsistencyReport)
def read_character_consistency(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    character = crud.get_owned_character(session=session, character_id=id, owner_id=current_user.id)
    if not character:
        raise HTTPException(status_code=404, detail="Character not found")
    return analytics.get_character_consistency(character)


@router.post("/real-time", response_model=analytics.RealTimeAnalysis)
def analyze_story_draft(
    analysis_in: RealTimeAnalysisRequest, session: SessionDep, current_user: CurrentUser
) -> Any:
    """Score a draft against a character's declared traits while the story is being written."""
    character = crud.get_owned_character(
        session=session, character_id=analysis_in.character_id, owner_id=current_user.id
    )
    if not character:
        raise HTTPException(status_code=404, detail="Character not found")
    return analytics.analyze_real_time(character, analysis_in.story_content)


@router.get("/dashboard", response_model=analytics.DashboardReport)
def read_dashboard(
    session: SessionDep, current_user: CurrentUser, child_profile_id: uuid.UUID | None = None
) -> Any:
    return analytics.build_dashboard(
        session=session, user_id=current_user.id, child_profile_id=child_profile_id
    )


@router.get("/characters", response_model=analytics.CharacterOverview)
def read_character_overview(
    session: SessionDep, current_user: CurrentUser, child_profile_id: uuid.UUID | None = None
) -> Any:
    return analytics.build_character_overview(
        session=session, user_id=current_user.id, child_profile_id=child_profile_id
    )


@router.get("/engagement", response_model=analytics.EngagementReport)
def read_character_engagement(
    session: SessionDep, current_user: CurrentUser, child_profile_id: uuid.UUID | None = None
) -> Any:
    return analytics.build_character_engagement(
        session=session, user_id=current_user.id, child_profile_id=child_profile_id
    )


@router.get(
    "/platform",
    dependencies=[Depends(get_current_active_superuser)],
    response_model=analytics.PlatformReport,
)
def read_platform_report(session: SessionDep) -> Any:
    return analytics.build_platform_report(session=session)


@router.post("/events")
def track_event(event: AnalyticsEvent, current_user: CurrentUser) -> Message:
    if event.type not in EVENT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid analytics event type")
    logger.info(
        "analytics_event %s",
        json.dumps({"type": event.type, "user_id": str(current_user.id), "data": event.data}, default=str),
    )
    return Message(message="Event tracked")


@router.get("/cache", dependencies=[Depends(get_current_active_superuser)])
def read_cache_stats() -> dict[str, dict[str, int]]:
    return analytics_cache.stats()
