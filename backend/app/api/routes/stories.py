import logging
import re
import uuid
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException
from sse_starlette.sse import EventSourceResponse

from app import crud
from app.agent.artifacts import StoryRequest
from app.agent.errors import classify_ai_error
from app.agent.orchestrator import (
    character_brief,
    generate_illustrations_for_story,
    illustrate_page,
    persist_story,
    run_story_pipeline_generator,
    write_story,
)
from app.analytics_cache import analytics_cache
from app.api.deps import CurrentUser, SessionDep
from app.models import (
    Character,
    CharacterPublic,
    ChildProfile,
    ChildProfilePublic,
    IllustrationPublic,
    Message,
    Story,
    StoryDetailPublic,
    StoryGenerateRequest,
    StoryPagePublic,
    StoryPublic,
    StorySave,
    StoryUpdate,
    User,
    get_datetime_utc,
)
from app.plan_limits import PlanLimits, is_within_limit, resolve_user_plan, start_of_month

router = APIRouter(prefix="/stories", tags=["stories"])
logger = logging.getLogger(__name__)

MAX_CHARACTERS_PER_STORY = 3


def story_to_public(story: Story) -> StoryPublic:
    return StoryPublic.model_validate(
        story,
        update={
            "pages": [
                StoryPagePublic(
                    id=page.id,
                    page_number=page.page_number,
                    content=page.content,
                    character_descriptions=page.character_descriptions or {},
                    illustration=(
                        IllustrationPublic.model_validate(page.illustration) if page.illustration else None
                    ),
                )
                for page in story.pages
            ],
            "character_ids": [character.id for character in story.characters],
        },
    )


def story_to_detail(story: Story) -> StoryDetailPublic:
    public = story_to_public(story)
    return StoryDetailPublic(
        **public.model_dump(),
        reading_progress=story.progress_percent,
        characters=[CharacterPublic.model_validate(c) for c in story.characters],
        child_profile=(
            ChildProfilePublic.model_validate(story.child_profile) if story.child_profile else None
        ),
    )


def _get_story_or_404(session: SessionDep, story_id: uuid.UUID, owner_id: uuid.UUID) -> Story:
    story = crud.get_owned_story(session=session, story_id=story_id, owner_id=owner_id)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")
    return story


def _get_profile_characters(
    session: SessionDep, character_ids: list[uuid.UUID], owner_id: uuid.UUID, child_profile_id: uuid.UUID
) -> list[Character]:
    characters = crud.get_profile_characters(
        session=session,
        character_ids=character_ids,
        owner_id=owner_id,
        child_profile_id=child_profile_id,
    )
    if len(characters) != len(set(character_ids)):
        raise HTTPException(status_code=400, detail="Some characters not found or invalid")
    return characters


def split_pages(content: str) -> list[str]:
    """Pages are the blank-line separated paragraphs of the text."""
    return [part.strip() for part in re.split(r"\n\s*\n", content) if part.strip()]


def story_summary(theme: str, names: list[str], moral_lesson: str | None) -> str:
    summary = f"A {theme} adventure featuring {', '.join(names)}"
    if moral_lesson:
        summary += f" that teaches about {moral_lesson}"
    return summary + "."


def _check_story_allowance(session: SessionDep, user: User) -> tuple[PlanLimits, bool]:
    """Return the plan limits and whether this story has to be paid with a credit."""
    plan, limits, _ = resolve_user_plan(session=session, user_id=user.id)
    stories_this_month = crud.count_stories_since(
        session=session, owner_id=user.id, since=start_of_month()
    )
    if is_within_limit(stories_this_month, limits.stories_per_month):
        return limits, False
    if user.credits > 0:
        return limits, True
    raise HTTPException(
        status_code=403,
        detail={
            "error": "Story limit reached",
            "message": (
                f"You have used all {limits.stories_per_month} stories of the {plan} plan this month. "
                "Buy credits or upgrade to keep creating stories."
            ),
            "current_count": stories_this_month,
            "limit": limits.stories_per_month,
        },
    )


def _prepare_generation(
    session: SessionDep, current_user: User, story_in: StoryGenerateRequest
) -> tuple[ChildProfile, list[Character], StoryRequest, PlanLimits, bool]:
    if not story_in.child_profile_id:
        raise HTTPException(status_code=400, detail="Child profile is required")
    if not story_in.theme.strip():
        raise HTTPException(status_code=400, detail="Theme is required")
    if not story_in.character_ids:
        raise HTTPException(status_code=400, detail="At least one character is required")
    if len(story_in.character_ids) > MAX_CHARACTERS_PER_STORY:
        raise HTTPException(
            status_code=400, detail=f"Maximum {MAX_CHARACTERS_PER_STORY} characters allowed per story"
        )

    profile = crud.get_owned_child_profile(
        session=session, child_profile_id=story_in.child_profile_id, owner_id=current_user.id
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Child profile not found")
    characters = _get_profile_characters(session, story_in.character_ids, current_user.id, profile.id)
    limits, use_credit = _check_story_allowance(session, current_user)

    request = StoryRequest(
        theme=story_in.theme.strip(),
        characters=[character_brief(c) for c in characters],
        moral_lesson=story_in.moral_lesson,
        details=story_in.details,
        page_count=story_in.page_count,
        child_age=profile.age,
    )
    return profile, characters, request, limits, use_credit


@router.get("/", response_model=list[StoryPublic])
def read_stories(
    session: SessionDep, current_user: CurrentUser, child_profile_id: uuid.UUID | None = None
) -> Any:
    stories = crud.list_stories(session=session, owner_id=current_user.id, child_profile_id=child_profile_id)
    return [story_to_public(story) for story in stories]


@router.post("/", response_model=StoryDetailPublic)
def save_story(*, session: SessionDep, current_user: CurrentUser, story_in: StorySave) -> Any:
    """Save a story written by the user, one page per paragraph."""
    profile = crud.get_owned_child_profile(
        session=session, child_profile_id=story_in.child_profile_id, owner_id=current_user.id
    )
    if not profile:
        raise HTTPException(status_code=404, detail="Child profile not found")
    characters = _get_profile_characters(session, story_in.character_ids, current_user.id, profile.id)

    pages = split_pages(story_in.content)
    if not pages:
        raise HTTPException(status_code=400, detail="Story content is required")
    descriptions = {c.name: f"{c.name}: {c.personality_description}" for c in characters}

    story = crud.create_story_with_pages(
        session=session,
        owner_id=current_user.id,
        child_profile_id=profile.id,
        title=story_in.title.strip(),
        theme=story_in.theme.strip(),
        summary=story_summary(story_in.theme.strip(), [c.name for c in characters], story_in.moral_lesson),
        moral_lesson=story_in.moral_lesson,
        pages=[(content, descriptions) for content in pages],
        characters=characters,
    )
    for character in characters:
        analytics_cache.invalidate_character(str(character.id))
    logger.info("Saved user story %s with %s pages", story.id, len(pages))
    return story_to_detail(story)


@router.post("/generate", response_model=StoryDetailPublic)
async def generate_story(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    story_in: StoryGenerateRequest,
    background_tasks: BackgroundTasks,
) -> Any:
    """Write a story with the text model and schedule its illustrations."""
    profile, characters, request, limits, use_credit = _prepare_generation(session, current_user, story_in)

    try:
        draft = await write_story(request)
    except Exception as exc:
        status_code, message = classify_ai_error(exc)
        logger.error("Story generation failed for user %s: %s", current_user.id, exc)
        raise HTTPException(status_code=status_code, detail=message)

    story = persist_story(
        session=session,
        owner=current_user,
        child_profile=profile,
        characters=characters,
        draft=draft,
        theme=request.theme,
        moral_lesson=request.moral_lesson,
        use_credit=use_credit,
    )
    if limits.images_per_story > 0:
        background_tasks.add_task(generate_illustrations_for_story, story.id, limits.images_per_story)
    return story_to_detail(story)


@router.post("/generate/stream")
async def generate_story_stream(
    *, session: SessionDep, current_user: CurrentUser, story_in: StoryGenerateRequest
) -> EventSourceResponse:
    """Write, save and illustrate a story, streaming progress via SSE."""
    profile, characters, request, limits, use_credit = _prepare_generation(session, current_user, story_in)
    return EventSourceResponse(
        run_story_pipeline_generator(
            session,
            owner=current_user,
            child_profile=profile,
            characters=characters,
            request=request,
            images_limit=limits.images_per_story,
            use_credit=use_credit,
        )
    )


@router.get("/{id}", response_model=StoryDetailPublic)
def read_story(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    return story_to_detail(_get_story_or_404(session, id, current_user.id))


@router.patch("/{id}", response_model=StoryDetailPublic)
def update_story(
    *, id: uuid.UUID, session: SessionDep, current_user: CurrentUser, story_in: StoryUpdate
) -> Any:
    story = _get_story_or_404(session, id, current_user.id)
    update_data = story_in.model_dump(exclude_unset=True)
    if "reading_progress" in update_data:
        update_data["progress_percent"] = update_data.pop("reading_progress")
    update_data = {key: value for key, value in update_data.items() if value is not None}
    story.sqlmodel_update(update_data, update={"updated_at": get_datetime_utc()})
    session.add(story)
    session.commit()
    session.refresh(story)
    return story_to_detail(story)


@router.delete("/{id}")
def delete_story(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Message:
    story = _get_story_or_404(session, id, current_user.id)
    character_ids = [str(c.id) for c in story.characters]
    session.delete(story)
    session.commit()
    for character_id in character_ids:
        analytics_cache.invalidate_character(character_id)
    return Message(message="Story deleted successfully")


@router.post("/{id}/pages/{page_number}/illustration", response_model=IllustrationPublic)
async def illustrate_story_page(
    id: uuid.UUID, page_number: int, session: SessionDep, current_user: CurrentUser
) -> Any:
    """Generate, or regenerate, the illustration of one page."""
    story = _get_story_or_404(session, id, current_user.id)
    page = crud.get_story_page(session=session, story_id=story.id, page_number=page_number)
    if not page:
        raise HTTPException(status_code=404, detail="Page not found")
    characters = [character_brief(c) for c in story.characters]
    if not characters:
        raise HTTPException(status_code=400, detail="Story has no characters to illustrate")

    try:
        return await illustrate_page(session=session, story=story, page=page, characters=characters)
    except Exception as exc:
        session.rollback()
        status_code, message = classify_ai_error(exc, subject="Illustration generation")
        logger.error("Illustration failed for story %s page %s: %s", story.id, page_number, exc)
        raise HTTPException(status_code=status_code, detail=message)
