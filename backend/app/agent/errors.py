import asyncio

import openai


class StoryGenerationTimeout(Exception):
    """Raised when the text model does not answer within the configured budget."""


def classify_ai_error(exc: BaseException, *, subject: str = "Story generation") -> tuple[int, str]:
    """Map an AI-service failure to an HTTP status code and a user-facing message."""
    if isinstance(exc, (StoryGenerationTimeout, asyncio.TimeoutError, TimeoutError, openai.APITimeoutError)):
        return 408, f"{subject} timed out. Please try again."
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return 503, "AI service configuration error. Please try again later."
    if isinstance(exc, openai.RateLimitError):
        return 429, "AI service is busy or out of quota. Please try again later."
    message = str(exc).lower()
    if "api key" in message or "api_key" in message:
        return 503, "AI service configuration error. Please try again later."
    if "rate limit" in message or "quota" in message:
        return 429, "AI service is busy or out of quota. Please try again later."
    return 502, "AI service failed to generate content. Please try again."
