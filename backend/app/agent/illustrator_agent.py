import logging

from app.agent.artifacts import IllustrationPlan, IllustrationRequest, IllustrationResult, StoryCharacterBrief
from app.agent.base import BaseAgent
from app.agent.llm_client import ImageClient, LLMClient
from app.agent.prompts.illustration import (
    IMAGE_PROMPT_PREFIX,
    IMAGE_PROMPT_SUFFIX,
    ILLUSTRATION_PROMPT_SYSTEM_PROMPT,
    PAGE_PROMPT_TEMPLATE,
)
from app.core.config import settings
from app.prompt_utils import (
    DEFAULT_ILLUSTRATION_STYLE,
    PromptCharacter,
    PromptScene,
    build_character_memory,
    clean_prompt,
    extract_action,
    extract_location,
    generate_illustration_prompt,
)

logger = logging.getLogger(__name__)


def to_prompt_character(character: StoryCharacterBrief) -> PromptCharacter:
    traits = [character.physical_features]
    if character.clothing_accessories:
        traits.append(character.clothing_accessories)
    traits.extend(character.personality_traits)
    return PromptCharacter(
        name=character.name,
        species=character.species,
        traits=[t for t in traits if t and t.strip()],
    )


def plan_page_illustration(request: IllustrationRequest) -> IllustrationPlan:
    """Build the template prompt for a page around its primary (first) character."""
    if not request.characters:
        raise ValueError("No characters provided for illustration")
    primary = to_prompt_character(request.characters[0])
    scene = PromptScene(
        location=extract_location(request.page_text, request.theme),
        action=extract_action(request.page_text, primary.name),
    )
    style = request.style or DEFAULT_ILLUSTRATION_STYLE
    structured = generate_illustration_prompt(primary, scene, style)
    image_prompt = PAGE_PROMPT_TEMPLATE.format(
        cleaned_prompt=clean_prompt(structured),
        story_context=request.story_title or request.theme,
        page_number=request.page_number,
    )
    return IllustrationPlan(
        structured_prompt=structured,
        image_prompt=image_prompt,
        character_memory=build_character_memory(primary, f"Primary character in {request.theme} story"),
    )


class IllustratorAgent(BaseAgent[IllustrationRequest, IllustrationResult]):
    """
    Agent that turns one story page into an illustration.

    The page is first reduced to a structured template prompt, the text model
    polishes it into a single image prompt, and the image model renders it.
    If polishing fails the template prompt is used as-is.
    """

    def __init__(
        self,
        model_name: str | None = None,
        llm: LLMClient | None = None,
        image_client: ImageClient | None = None,
    ):
        super().__init__(model_name=model_name or settings.MODEL_PROMPT, llm=llm)
        self.images = image_client or ImageClient()

    async def write_prompt(self, plan: IllustrationPlan) -> str:
        try:
            return await self.llm.generate_text(
                system_prompt=ILLUSTRATION_PROMPT_SYSTEM_PROMPT,
                user_prompt=f"{plan.character_memory}\n\n{plan.image_prompt}",
                temperature=0.7,
                max_tokens=300,
            )
        except Exception as exc:
            logger.warning("Illustration prompt polishing failed, using template prompt: %s", exc)
            return plan.image_prompt

    async def illustrate(self, prompt: str) -> str:
        return await self.images.generate_image(f"{IMAGE_PROMPT_PREFIX}{prompt}{IMAGE_PROMPT_SUFFIX}")

    async def run(self, input_data: IllustrationRequest) -> IllustrationResult:
        plan = plan_page_illustration(input_data)
        prompt = await self.write_prompt(plan)
        image_url = await self.illustrate(prompt)
        logger.info("Illustrated page %s", input_data.page_number)
        return IllustrationResult(page_number=input_data.page_number, image_url=image_url, prompt=prompt)
