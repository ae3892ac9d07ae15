import asyncio

import httpx
import openai
import pytest

from app.agent.errors import StoryGenerationTimeout, classify_ai_error

REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


def _status_error(cls, status_code):
    return cls("provider error", response=httpx.Response(status_code, request=REQUEST), body=None)


@pytest.mark.parametrize(
    "exc, status_code",
    [
        (StoryGenerationTimeout("too slow"), 408),
        (asyncio.TimeoutError(), 408),
        (openai.APITimeoutError(request=REQUEST), 408),
        (_status_error(openai.AuthenticationError, 401), 503),
        (_status_error(openai.RateLimitError, 429), 429),
        (RuntimeError("Missing API key for provider"), 503),
        (RuntimeError("You exceeded your current quota"), 429),
        (ValueError("Unable to parse structured response"), 502),
    ],
)
def test_classify_ai_error(exc, status_code):
    assert classify_ai_error(exc)[0] == status_code


def test_timeout_message_names_the_subject():
    assert classify_ai_error(StoryGenerationTimeout(), subject="Avatar generation") == (
        408,
        "Avatar generation timed out. Please try again.",
    )
