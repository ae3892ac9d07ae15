import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app import crud
from app.api.deps import CurrentUser, SessionDep
from app.models import Message, RecommendationInteraction
from app.recommendations import RecommendationContext, StoryRecommendation, recommend_for_child

router = APIRouter(prefix="/recommendations", tags=["recommendations"])
logger = logging.getLogger(__name__)


class RecommendationsPublic(BaseModel):
    recommendations: list[StoryRecommendation]
    context: RecommendationContext
    generated_at: datetime


@router.get("/", response_model=RecommendationsPublic)
def read_recommendations(
    child_profile_id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    quick: bool = False,
) -> Any:
    profile = crud.get_owned_child_profile(
        session=session, child_profile_id=child_profile_id, owner_id=current_user.id
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Child profile not found")
    context, recommendations = recommend_for_child(session=session, child_profile=profile, quick=quick)
    return RecommendationsPublic(
        recommendations=recommendations,
        context=context,
        generated_at=datetime.now(timezone.utc),
    )


@router.post("/interactions")
def track_recommendation_interaction(
    interaction: RecommendationInteraction, session: SessionDep, current_user: CurrentUser
) -> Message:
    profile = crud.get_owned_child_profile(
        session=session, child_profile_id=interaction.child_profile_id, owner_id=current_user.id
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Child profile not found")
    logger.info(
        "Recommendation %s %s by child profile %s",
        interaction.recommendation_id,
        interaction.action,
        profile.id,
    )
    return Message(message="Interaction tracked")
