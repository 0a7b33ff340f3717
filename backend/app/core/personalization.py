"""AI personalization - one chat completion per candidate, retried with backoff"""
import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional
import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from backend.app.config import get_settings
from backend.app.core.prompts import PERSONALIZATION_SYSTEM_PROMPT, build_user_prompt
from backend.app.core.retry import is_retryable_status, retry_with_backoff
from backend.app.integrations.openai_client import get_client
from backend.app.models import Candidate, EnrichmentPayload

logger = logging.getLogger(__name__)


def is_retryable_llm_error(error: Exception) -> bool:
    """429, 5xx and network-level failures; other 4xx are final"""
    if isinstance(error, openai.APIStatusError):
        return is_retryable_status(error.status_code)
    return isinstance(error, openai.APIConnectionError)


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_payload(content: Optional[str], candidate: Candidate) -> Optional[EnrichmentPayload]:
    """Validate the model output and fill defaults from the candidate"""
    if not content:
        return None

    try:
        data = json.loads(_strip_code_fence(content))
    except ValueError:
        logger.warning("Unparseable personalization for %s: %.120s", candidate.company_name, content)
        return None

    if not isinstance(data, dict):
        logger.warning("Personalization for %s is not a JSON object", candidate.company_name)
        return None

    data["normalized_company"] = data.get("normalized_company") or candidate.company_name
    data["region"] = data.get("region") or candidate.platform_name or ""

    try:
        return EnrichmentPayload.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid personalization for %s: %s", candidate.company_name, e)
        return None


class PersonalizationGenerator:
    """Builds the enrichment payload for one candidate, or None on failure"""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self._client = client
        self.model = model or settings.llm_model
        self.max_tokens = settings.llm_max_tokens
        self.temperature = settings.llm_temperature
        self.max_attempts = max_attempts or settings.llm_max_attempts
        self.base_delay = settings.llm_base_delay_seconds if base_delay is None else base_delay
        self.sleep = sleep

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    def _messages(self, candidate: Candidate) -> list[Dict[str, Any]]:
        return [
            {"role": "system", "content": PERSONALIZATION_SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(candidate)},
        ]

    async def _complete(self, candidate: Candidate) -> Optional[str]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(candidate),
            response_format={"type": "json_object"},
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content

    async def generate(self, candidate: Candidate) -> Optional[EnrichmentPayload]:
        started = time.monotonic()
        try:
            content = await retry_with_backoff(
                lambda: self._complete(candidate),
                is_retryable=is_retryable_llm_error,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                sleep=self.sleep,
                label=f"personalization for {candidate.company_name}",
            )
        except Exception as e:
            logger.warning("Personalization failed for %s: %s", candidate.company_name, e)
            return None

        payload = parse_payload(content, candidate)
        if payload is not None:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info("AI personalization generated in %dms for %s", elapsed_ms, candidate.company_name)
        return payload
