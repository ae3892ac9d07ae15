import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException

from app import crud
from app.agent.llm_client import ImageClient
from app.api.deps import CurrentUser, SessionDep
from app.illustration_storage import store_remote_image
from app.models import (
    ChildProfile,
    ChildProfileAICreate,
    ChildProfileCreate,
    ChildProfileCreated,
    ChildProfilePublic,
    ChildProfileUpdate,
    Message,
)
from app.plan_limits import is_within_limit, resolve_user_plan
from app.prompt_utils import child_avatar_prompt

router = APIRouter(prefix="/child-profiles", tags=["child-profiles"])
logger = logging.getLogger(__name__)


def _get_profile_or_404(session: SessionDep, profile_id: uuid.UUID, owner_id: uuid.UUID) -> ChildProfile:
    profile = crud.get_owned_child_profile(session=session, child_profile_id=profile_id, owner_id=owner_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Child profile not found")
    return profile


def _ensure_profile_allowance(session: SessionDep, current_user: CurrentUser) -> None:
    plan, limits, _ = resolve_user_plan(session=session, user_id=current_user.id)
    current_count = crud.count_child_profiles(session=session, owner_id=current_user.id)
    if not is_within_limit(current_count, limits.child_profiles):
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Child profile limit reached",
                "message": (
                    f"You have reached your child profile limit of {limits.child_profiles} "
                    f"for the {plan} plan. Please upgrade to add more profiles."
                ),
                "current_count": current_count,
                "limit": limits.child_profiles,
            },
        )


@router.get("/", response_model=list[ChildProfilePublic])
def read_child_profiles(session: SessionDep, current_user: CurrentUser) -> Any:
    return crud.list_child_profiles(session=session, owner_id=current_user.id)


@router.post("/", response_model=ChildProfilePublic)
def create_child_profile(
    *, session: SessionDep, current_user: CurrentUser, profile_in: ChildProfileCreate
) -> Any:
    _ensure_profile_allowance(session, current_user)
    return crud.create_child_profile(session=session, profile_in=profile_in, owner_id=current_user.id)


@router.post("/ai", response_model=ChildProfileCreated)
async def create_child_profile_with_avatar(
    *, session: SessionDep, current_user: CurrentUser, profile_in: ChildProfileAICreate
) -> Any:
    """
    Create a profile and paint an avatar from the visual description.
    The profile is kept even when the avatar cannot be generated.
    """
    _ensure_profile_allowance(session, current_user)
    warning = None
    try:
        image_url = await ImageClient().generate_image(child_avatar_prompt(profile_in.visual_description))
        avatar_url, _ = await store_remote_image(image_url, "avatars")
        profile_in.avatar_url = avatar_url
    except Exception as exc:
        logger.warning("Avatar generation failed for new child profile: %s", exc)
        warning = "Profile created, but the avatar could not be generated."

    profile = crud.create_child_profile(
        session=session,
        profile_in=ChildProfileCreate.model_validate(profile_in.model_dump(exclude={"visual_description"})),
        owner_id=current_user.id,
    )
    return ChildProfileCreated.model_validate(profile, update={"warning": warning})


@router.get("/{id}", response_model=ChildProfilePublic)
def read_child_profile(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    return _get_profile_or_404(session, id, current_user.id)


@router.patch("/{id}", response_model=ChildProfilePublic)
def update_child_profile(
    *, id: uuid.UUID, session: SessionDep, current_user: CurrentUser, profile_in: ChildProfileUpdate
) -> Any:
    profile = _get_profile_or_404(session, id, current_user.id)
    return crud.update_child_profile(session=session, db_profile=profile, profile_in=profile_in)


@router.delete("/{id}")
def delete_child_profile(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Message:
    profile = _get_profile_or_404(session, id, current_user.id)
    session.delete(profile)
    session.commit()
    return Message(message="Child profile deleted successfully")
