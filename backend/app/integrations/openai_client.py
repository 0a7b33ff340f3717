"""
Text generation client - OpenAI SDK against any OpenAI-compatible endpoint
(Mistral chat completions by default)
"""
from typing import Optional
import httpx
from openai import AsyncOpenAI

from backend.app.config import get_settings

_client: Optional[AsyncOpenAI] = None


def build_client(http_client: Optional[httpx.AsyncClient] = None) -> AsyncOpenAI:
    """New client; SDK retries are off, retry_with_backoff owns them"""
    settings = get_settings()
    return AsyncOpenAI(
        api_key=settings.llm_api_key or "missing-key",
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
        http_client=http_client,
    )


def get_client() -> AsyncOpenAI:
    """Returns the shared client"""
    global _client
    if _client is None:
        _client = build_client()
    return _client
