import logging

from app.agent.artifacts import StoryCharacterBrief, StoryDraft, StoryRequest
from app.agent.base import BaseAgent
from app.agent.prompts.story import (
    DEFAULT_AGE_RANGE,
    DEFAULT_MORAL_LESSON,
    DEFAULT_STORY_DETAILS,
    STORY_WRITER_SYSTEM_PROMPT,
    STORY_WRITER_USER_TEMPLATE,
)
from app.core.config import settings

logger = logging.getLogger(__name__)


def describe_character(character: StoryCharacterBrief) -> str:
    line = f"{character.name}: {character.species}, {character.personality_description}. {character.physical_features}"
    if character.favorite_phrases:
        line += f" Often says: {', '.join(repr(p) for p in character.favorite_phrases)}."
    return line


def age_range_for(child_age: int | None) -> str:
    if child_age is None:
        return DEFAULT_AGE_RANGE
    return f"{max(child_age - 1, 1)}-{child_age + 1}"


class StoryWriterAgent(BaseAgent[StoryRequest, StoryDraft]):
    """
    Agent responsible for writing a paginated story draft
    for the selected characters, theme and moral lesson.
    """

    def __init__(self, model_name: str | None = None, **kwargs):
        super().__init__(model_name=model_name or settings.MODEL_STORY, **kwargs)

    def build_user_prompt(self, request: StoryRequest) -> str:
        return STORY_WRITER_USER_TEMPLATE.format(
            theme=request.theme,
            characters="\n".join(describe_character(c) for c in request.characters),
            moral_lesson=request.moral_lesson or DEFAULT_MORAL_LESSON,
            details=request.details or DEFAULT_STORY_DETAILS,
            page_count=request.page_count,
            age_range=age_range_for(request.child_age),
        )

    async def run(self, input_data: StoryRequest) -> StoryDraft:
        draft = await self.llm.generate_structured(
            system_prompt=STORY_WRITER_SYSTEM_PROMPT,
            user_prompt=self.build_user_prompt(input_data),
            response_schema=StoryDraft,
            temperature=0.8,
            max_tokens=2000,
        )

        # Post-validation: keep non-empty pages and renumber them in reading order.
        pages = [page for page in sorted(draft.pages, key=lambda p: p.page_number) if page.content.strip()]
        if not pages:
            raise ValueError("StoryWriterAgent produced a story without any pages.")
        if len(pages) != input_data.page_count:
            logger.warning(
                "Story draft has %s pages, %s were requested", len(pages), input_data.page_count
            )
        for number, page in enumerate(pages, start=1):
            page.page_number = number
            page.content = page.content.strip()
        draft.pages = pages
        draft.title = draft.title.strip() or f"A {input_data.theme} story"
        return draft
