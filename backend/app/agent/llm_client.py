import json
import logging
import re
from typing import TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

STRUCTURED_RETRY_NOTE = (
    "RETRY INSTRUCTIONS: Your previous response was invalid or incomplete. "
    "Return ONLY a single JSON object matching the schema. "
    "Do not add any prose, headings, markdown fences, or explanations."
)

TEXT_RETRY_NOTE = (
    "RETRY INSTRUCTIONS: Return only the requested text with no markdown fences "
    "and no explanation."
)


def _extract_fenced_block(text: str) -> str | None:
    blocks = re.findall(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    return blocks[0].strip() if blocks else None


def _strip_code_fences(text: str) -> str:
    if not text:
        return ""
    fenced = re.match(r"^\s*```[a-zA-Z0-9_-]*\s*([\s\S]*?)\s*```\s*$", text)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def _extract_balanced_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, skipping braces inside strings."""
    start_idx = text.find("{") if text else -1
    if start_idx == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start_idx, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx:i + 1]
    return None


def _json_candidates(raw_text: str) -> list[str]:
    text = (raw_text or "").strip()
    if not text:
        return []

    # Models sometimes emit a bare "json" token before the object.
    if text.lower().startswith("json"):
        text = text[4:].lstrip(": \n\r\t")

    candidates = [_extract_fenced_block(text), text, _extract_balanced_json_object(text)]
    unique: list[str] = []
    for candidate in candidates:
        if candidate and candidate.strip() and candidate.strip() not in unique:
            unique.append(candidate.strip())
    return unique


class LLMClient:
    """Chat-completions client for story text and structured JSON output (any OpenAI-compatible endpoint)."""

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.client = AsyncOpenAI(
            base_url=base_url or settings.LLM_BASE_URL,
            api_key=api_key or settings.LLM_API_KEY,
        )

    def _chat_completion_kwargs(self, *, temperature: float | None, max_tokens: int | None) -> dict:
        kwargs: dict = {}
        # GPT-5 family rejects non-default temperature values.
        if temperature is not None and not (self.model_name or "").lower().startswith("gpt-5"):
            kwargs["temperature"] = temperature
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None,
        max_tokens: int | None,
    ) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **self._chat_completion_kwargs(temperature=temperature, max_tokens=max_tokens),
        )
        if not getattr(response, "choices", None):
            logger.error("Received no choices from %s: %s", self.model_name, response)
            raise ValueError(f"Provider {self.model_name} returned no output")
        return response.choices[0].message.content or ""

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: type[T],
        *,
        temperature: float = 0.8,
        max_tokens: int | None = None,
    ) -> T:
        """
        Generate a response matching ``response_schema``.

        The JSON schema is appended to the system prompt rather than relying on a
        provider JSON mode. One stricter retry is made when the output cannot be parsed.
        """
        schema_json = json.dumps(response_schema.model_json_schema())
        augmented_system_prompt = (
            f"{system_prompt}\n\n"
            "CRITICAL: You must respond in ONLY valid JSON format matching the following JSON Schema. "
            "Do not include markdown code blocks (```json) or any conversational text around the JSON.\n\n"
            f"EXPECTED SCHEMA:\n{schema_json}"
        )
        attempt_prompts = [
            augmented_system_prompt,
            f"{augmented_system_prompt}\n\n{STRUCTURED_RETRY_NOTE}",
        ]

        for attempt_idx, system_prompt_attempt in enumerate(attempt_prompts, start=1):
            logger.info(
                "Issuing structured request to model %s (attempt %s/%s)...",
                self.model_name,
                attempt_idx,
                len(attempt_prompts),
            )
            text_response = await self._complete(
                system_prompt_attempt,
                user_prompt,
                temperature=0 if attempt_idx > 1 else temperature,
                max_tokens=max_tokens,
            )

            parse_errors: list[str] = []
            for candidate in _json_candidates(text_response):
                try:
                    return response_schema.model_validate(json.loads(candidate, strict=False))
                except (json.JSONDecodeError, ValidationError) as candidate_error:
                    parse_errors.append(str(candidate_error))

            error = ValueError(
                "Unable to parse structured response: " + (" | ".join(parse_errors[:3]) or "empty content")
            )
            if attempt_idx < len(attempt_prompts):
                logger.warning(
                    "Structured parsing failed for %s on attempt %s/%s: %s. Retrying...",
                    self.model_name,
                    attempt_idx,
                    len(attempt_prompts),
                    error,
                )
                continue
            logger.error("Error parsing structured response from %s: %s", self.model_name, error)
            raise error

        raise RuntimeError("Structured generation failed without a captured error")

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        """Generate plain text, with surrounding markdown fences removed."""
        prompts = [system_prompt, f"{system_prompt}\n\n{TEXT_RETRY_NOTE}"]
        for attempt_idx, system_prompt_attempt in enumerate(prompts, start=1):
            logger.info(
                "Issuing text request to model %s (attempt %s/%s)...",
                self.model_name,
                attempt_idx,
                len(prompts),
            )
            text_response = _strip_code_fences(
                await self._complete(
                    system_prompt_attempt,
                    user_prompt,
                    temperature=0 if attempt_idx > 1 else temperature,
                    max_tokens=max_tokens,
                )
            )
            if text_response:
                return text_response
            if attempt_idx < len(prompts):
                logger.warning("Empty text response from %s on attempt %s. Retrying...", self.model_name, attempt_idx)
                continue
            raise ValueError(f"Model {self.model_name} returned empty content")

        raise RuntimeError("Text generation failed without a captured error")


class ImageClient:
    """Thin wrapper over the images API used for illustrations and avatars."""

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_IMAGE
        self.client = AsyncOpenAI(
            base_url=base_url or settings.IMAGE_BASE_URL or settings.LLM_BASE_URL,
            api_key=api_key or settings.IMAGE_API_KEY or settings.LLM_API_KEY,
        )

    async def generate_image(self, prompt: str, *, size: str | None = None, quality: str | None = None) -> str:
        """Return a URL for one generated image, or a ``data:`` URI when the service returns base64."""
        logger.info("Issuing image request to model %s...", self.model_name)
        response = await self.client.images.generate(
            model=self.model_name,
            prompt=prompt,
            size=size or settings.IMAGE_SIZE,
            quality=quality or settings.IMAGE_QUALITY,
            n=1,
        )
        data = getattr(response, "data", None) or []
        if not data:
            raise ValueError(f"Image model {self.model_name} returned no images")
        image = data[0]
        if getattr(image, "url", None):
            return image.url
        if getattr(image, "b64_json", None):
            return f"data:image/png;base64,{image.b64_json}"
        raise ValueError(f"Image model {self.model_name} returned an empty image")
