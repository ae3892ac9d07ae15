import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException

from app import crud
from app.agent.errors import classify_ai_error
from app.agent.llm_client import ImageClient
from app.analytics_cache import analytics_cache
from app.api.deps import CurrentUser, SessionDep
from app.illustration_storage import store_remote_image
from app.models import (
    Character,
    CharacterAvatarRequest,
    CharacterCreate,
    CharacterPublic,
    CharacterUpdate,
    Message,
)
from app.plan_limits import is_within_limit, resolve_user_plan
from app.prompt_utils import DEFAULT_AVATAR_STYLE, STYLE_PREFIXES, character_avatar_prompt

router = APIRouter(prefix="/characters", tags=["characters"])
logger = logging.getLogger(__name__)


def _get_character_or_404(session: SessionDep, character_id: uuid.UUID, owner_id: uuid.UUID) -> Character:
    character = crud.get_owned_character(session=session, character_id=character_id, owner_id=owner_id)
    if not character:
        raise HTTPException(status_code=404, detail="Character not found")
    return character


@router.get("/styles")
def read_character_styles() -> dict[str, Any]:
    return {"default": DEFAULT_AVATAR_STYLE, "styles": STYLE_PREFIXES}


@router.get("/", response_model=list[CharacterPublic])
def read_characters(
    session: SessionDep, current_user: CurrentUser, child_profile_id: uuid.UUID | None = None
) -> Any:
    return crud.list_characters(session=session, owner_id=current_user.id, child_profile_id=child_profile_id)


@router.post("/", response_model=CharacterPublic)
def create_character(
    *, session: SessionDep, current_user: CurrentUser, character_in: CharacterCreate
) -> Any:
    profile = crud.get_owned_child_profile(
        session=session, child_profile_id=character_in.child_profile_id, owner_id=current_user.id
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Child profile not found")

    plan, limits, _ = resolve_user_plan(session=session, user_id=current_user.id)
    current_count = crud.count_characters(session=session, owner_id=current_user.id)
    if not is_within_limit(current_count, limits.characters_limit):
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Character limit reached",
                "message": (
                    f"You have reached your character limit of {limits.characters_limit} "
                    f"for the {plan} plan. Please upgrade to create more characters."
                ),
                "current_count": current_count,
                "limit": limits.characters_limit,
            },
        )

    character = crud.create_character(session=session, character_in=character_in, owner_id=current_user.id)
    logger.info("Created character %s for child profile %s", character.id, profile.id)
    return character


@router.get("/{id}", response_model=CharacterPublic)
def read_character(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    return _get_character_or_404(session, id, current_user.id)


@router.put("/{id}", response_model=CharacterPublic)
def update_character(
    *, id: uuid.UUID, session: SessionDep, current_user: CurrentUser, character_in: CharacterUpdate
) -> Any:
    character = _get_character_or_404(session, id, current_user.id)
    character = crud.update_character(session=session, db_character=character, character_in=character_in)
    analytics_cache.invalidate_character(str(character.id))
    return character


@router.delete("/{id}")
def delete_character(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Message:
    character = _get_character_or_404(session, id, current_user.id)
    session.delete(character)
    session.commit()
    analytics_cache.invalidate_character(str(id))
    return Message(message="Character deleted successfully")


@router.post("/{id}/avatar", response_model=CharacterPublic)
async def generate_character_avatar(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    avatar_in: CharacterAvatarRequest | None = None,
) -> Any:
    character = _get_character_or_404(session, id, current_user.id)
    style_name = (avatar_in.style_name if avatar_in else None) or character.style_name
    if style_name not in STYLE_PREFIXES:
        style_name = DEFAULT_AVATAR_STYLE

    prompt = character_avatar_prompt(
        name=character.name,
        species=character.species,
        physical_features=character.physical_features,
        style_name=style_name,
    )
    try:
        image_url = await ImageClient().generate_image(prompt)
    except Exception as exc:
        status_code, message = classify_ai_error(exc, subject="Avatar generation")
        logger.error("Avatar generation failed for character %s: %s", character.id, exc)
        raise HTTPException(status_code=status_code, detail=message)

    character.image_url, _ = await store_remote_image(image_url, "characters")
    character.style_name = style_name
    session.add(character)
    session.commit()
    session.refresh(character)
    return character
