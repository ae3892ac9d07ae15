import asyncio
import json
import logging
import uuid
from collections.abc import AsyncGenerator

from sqlmodel import Session

from app import crud
from app.agent.artifacts import IllustrationRequest, StoryCharacterBrief, StoryDraft, StoryRequest
from app.agent.errors import StoryGenerationTimeout, classify_ai_error
from app.agent.illustrator_agent import IllustratorAgent
from app.agent.story_writer_agent import StoryWriterAgent
from app.analytics_cache import analytics_cache
from app.core.config import settings
from app.core.db import engine
from app.illustration_storage import store_remote_image
from app.models import Character, ChildProfile, Illustration, Story, StoryPage, User

logger = logging.getLogger(__name__)


def character_brief(character: Character) -> StoryCharacterBrief:
    return StoryCharacterBrief(
        id=character.id,
        name=character.name,
        species=character.species,
        physical_features=character.physical_features,
        personality_description=character.personality_description,
        clothing_accessories=character.clothing_accessories,
        personality_traits=list(character.personality_traits or []),
        speaking_style=character.speaking_style,
        favorite_phrases=list(character.favorite_phrases or []),
    )


def _rollback_session_safely(session: Session) -> None:
    try:
        session.rollback()
    except Exception as exc:
        logger.warning("Session rollback failed: %s", exc)


async def write_story(request: StoryRequest, *, timeout: float | None = None) -> StoryDraft:
    """Run the writer under the story generation time budget."""
    budget = timeout or settings.STORY_GENERATION_TIMEOUT_SECONDS
    agent = StoryWriterAgent()
    try:
        return await asyncio.wait_for(agent.run(request), timeout=budget)
    except asyncio.TimeoutError as exc:
        raise StoryGenerationTimeout(f"Story generation exceeded {budget:.0f}s") from exc


def persist_story(
    *,
    session: Session,
    owner: User,
    child_profile: ChildProfile,
    characters: list[Character],
    draft: StoryDraft,
    theme: str,
    moral_lesson: str | None,
    use_credit: bool = False,
) -> Story:
    story = crud.create_story_with_pages(
        session=session,
        owner_id=owner.id,
        child_profile_id=child_profile.id,
        title=draft.title,
        theme=theme,
        summary=draft.summary,
        moral_lesson=moral_lesson,
        pages=[(page.content, page.character_descriptions) for page in draft.pages],
        characters=characters,
    )
    if use_credit and owner.credits > 0:
        owner.credits -= 1
        session.add(owner)
        session.commit()
    for character in characters:
        analytics_cache.invalidate_character(str(character.id))
    logger.info("Saved story %s with %s pages", story.id, len(draft.pages))
    return story


async def illustrate_page(
    *,
    session: Session,
    story: Story,
    page: StoryPage,
    characters: list[StoryCharacterBrief],
    agent: IllustratorAgent | None = None,
) -> Illustration:
    agent = agent or IllustratorAgent()
    result = await agent.run(
        IllustrationRequest(
            page_number=page.page_number,
            page_text=page.content,
            theme=story.theme,
            characters=characters,
            story_title=story.title,
        )
    )
    url, storage = await store_remote_image(result.image_url, "stories")
    return crud.save_illustration(session=session, page=page, url=url, prompt=result.prompt, storage=storage)


async def generate_illustrations_for_story(story_id: uuid.UUID, limit: int) -> int:
    """
    Illustrate the first ``limit`` pages of a saved story.

    Runs after the response has been sent, with its own session. A failing page
    is logged and skipped; nothing is retried.
    """
    created = 0
    with Session(engine) as session:
        story = session.get(Story, story_id)
        if not story:
            logger.warning("Story %s disappeared before illustration", story_id)
            return 0
        characters = [character_brief(c) for c in story.characters]
        if not characters:
            logger.warning("Story %s has no characters to illustrate", story_id)
            return 0
        try:
            agent = IllustratorAgent()
        except Exception as exc:
            logger.error("Could not start illustrator for story %s: %s", story_id, exc)
            return 0

        for page in list(story.pages)[:max(limit, 0)]:
            try:
                await illustrate_page(session=session, story=story, page=page, characters=characters, agent=agent)
                created += 1
            except Exception as exc:
                _rollback_session_safely(session)
                logger.error("Illustration failed for story %s page %s: %s", story_id, page.page_number, exc)
    logger.info("Generated %s illustrations for story %s", created, story_id)
    return created


async def run_story_pipeline_generator(
    session: Session,
    *,
    owner: User,
    child_profile: ChildProfile,
    characters: list[Character],
    request: StoryRequest,
    images_limit: int,
    use_credit: bool = False,
) -> AsyncGenerator[str, None]:
    """
    Writes, saves and illustrates a story in one pass,
    yielding SSE events for the frontend.
    """
    yield json.dumps({"status": "starting", "message": "Preparing your story..."})

    try:
        yield json.dumps({"status": "writing", "message": "Writing the story..."})
        draft = await write_story(request)
        story = persist_story(
            session=session,
            owner=owner,
            child_profile=child_profile,
            characters=characters,
            draft=draft,
            theme=request.theme,
            moral_lesson=request.moral_lesson,
            use_credit=use_credit,
        )
    except Exception as exc:
        _rollback_session_safely(session)
        status_code, message = classify_ai_error(exc)
        logger.error("Story pipeline failed before saving: %s", exc)
        yield json.dumps({"status": "error", "code": status_code, "message": message})
        return

    yield json.dumps(
        {"status": "saved", "story_id": str(story.id), "title": story.title, "pages": len(story.pages)}
    )

    briefs = [character_brief(c) for c in characters]
    illustrated = 0
    agent: IllustratorAgent | None = None
    for page in list(story.pages)[:max(images_limit, 0)]:
        yield json.dumps(
            {"status": "illustrating", "page_number": page.page_number, "message": f"Illustrating page {page.page_number}..."}
        )
        try:
            agent = agent or IllustratorAgent()
            illustration = await illustrate_page(
                session=session, story=story, page=page, characters=briefs, agent=agent
            )
            illustrated += 1
            yield json.dumps(
                {"status": "illustration", "page_number": page.page_number, "url": illustration.url}
            )
        except Exception as exc:
            _rollback_session_safely(session)
            logger.error("Illustration failed for story %s page %s: %s", story.id, page.page_number, exc)
            yield json.dumps(
                {"status": "illustration_failed", "page_number": page.page_number, "message": str(exc)}
            )

    yield json.dumps(
        {"status": "completed", "story_id": str(story.id), "illustrations": illustrated}
    )
