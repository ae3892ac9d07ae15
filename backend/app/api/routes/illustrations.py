import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from app import prompt_utils
from app.agent.errors import classify_ai_error
from app.agent.llm_client import ImageClient
from app.api.deps import CurrentUser
from app.core.config import settings
from app.models import (
    ImageGeneratePublic,
    ImageGenerateRequest,
    IllustrationPromptPublic,
    IllustrationPromptRequest,
    get_datetime_utc,
)

router = APIRouter(prefix="/illustrations", tags=["illustrations"])
logger = logging.getLogger(__name__)


@router.post("/prompt", response_model=IllustrationPromptPublic)
def build_illustration_prompt(
    prompt_in: IllustrationPromptRequest, current_user: CurrentUser
) -> Any:
    character = prompt_utils.PromptCharacter(
        name=prompt_in.character.name,
        species=prompt_in.character.species,
        traits=list(prompt_in.character.traits),
    )
    scene = prompt_utils.PromptScene(
        location=prompt_in.scene.location,
        action=prompt_in.scene.action,
        lighting=prompt_in.scene.lighting,
    )
    prompt = prompt_utils.generate_illustration_prompt(
        character, scene, style=prompt_in.style or prompt_utils.DEFAULT_ILLUSTRATION_STYLE
    )
    return IllustrationPromptPublic(
        prompt=prompt,
        cleaned_prompt=prompt_utils.clean_prompt(prompt),
        character_memory=prompt_utils.build_character_memory(character, prompt_in.notes),
    )


@router.post("/generate-image", response_model=ImageGeneratePublic)
async def generate_image(image_in: ImageGenerateRequest, current_user: CurrentUser) -> Any:
    prompt = prompt_utils.clean_prompt(image_in.prompt)
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required and must be a non-empty string")

    client = ImageClient()
    try:
        image_url = await client.generate_image(prompt)
    except Exception as exc:
        status_code, message = classify_ai_error(exc, subject="Image generation")
        logger.error("Image generation failed for user %s: %s", current_user.id, exc)
        raise HTTPException(status_code=status_code, detail=message)

    return ImageGeneratePublic(
        image_url=image_url,
        prompt=prompt,
        metadata={
            "model": client.model_name,
            "size": settings.IMAGE_SIZE,
            "timestamp": get_datetime_utc().isoformat(),
        },
    )
