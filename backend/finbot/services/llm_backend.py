"""
Generative backend for FinBot.

The insight engine talks to a GenerativeBackend: send a system instruction and
a user prompt, get back a parsed JSON object plus the raw text, or a
BackendError. Nothing outside this module knows which vendor is behind it.

OpenAIBackend uses the official async OpenAI client with JSON response
format. Every request and response is logged for audit (model, prompt size,
token bound, response size, finish reason).
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

from ..config import config

logger = logging.getLogger(__name__)

JSON_FENCE = re.compile(r'```(?:json)?\s*(\{.*?\})\s*```', re.DOTALL)


class BackendError(Exception):
    """Raised when the generative backend cannot produce a usable response."""


@dataclass(frozen=True)
class BackendResult:
    content: Dict[str, Any]
    raw: str
    model: str
    finish_reason: Optional[str] = None


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Parse a model response as a JSON object. Accepts a bare object or one
    wrapped in a ```json fence.
    """
    if not text:
        raise BackendError('Empty response from generative backend')

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        match = JSON_FENCE.search(text)
        if not match:
            raise BackendError(f"Failed to parse backend response: {e}") from e
        try:
            parsed = json.loads(match.group(1))
        except json.JSONDecodeError as inner:
            raise BackendError(f"Failed to parse fenced backend response: {inner}") from inner

    if not isinstance(parsed, dict):
        raise BackendError('Backend response is not a JSON object')
    return parsed


class GenerativeBackend(ABC):
    """Opaque structured-text capability injected into the insight engine."""

    name = 'backend'
    model = 'unknown'

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> BackendResult:
        """Return a parsed JSON response or raise BackendError."""

    async def close(self) -> None:
        pass


class OpenAIBackend(GenerativeBackend):
    """
    Chat completions through the OpenAI API
    """

    name = 'openai'

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        base_url: str = None,
        timeout: float = None,
        temperature: float = None,
        client: AsyncOpenAI = None,
    ):
        self.model = model or config.OPENAI_MODEL
        self.timeout = timeout or config.LLM_TIMEOUT_SECONDS
        self.temperature = config.LLM_TEMPERATURE if temperature is None else temperature

        if client is not None:
            self.client = client
        else:
            api_key = api_key or config.OPENAI_API_KEY
            if not api_key:
                raise BackendError('OPENAI_API_KEY not set')
            base_url = base_url or config.OPENAI_BASE_URL
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=self.timeout)

        logger.info(f"OpenAI backend initialized with model {self.model}")

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> BackendResult:
        logger.info(
            f"LLM request: model={self.model}, prompt_length={len(user_prompt)}, max_tokens={max_tokens}"
        )

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=max_tokens,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise BackendError(f"LLM request timed out after {self.timeout}s") from e
        except OpenAIError as e:
            raise BackendError(f"LLM request failed: {str(e)}") from e

        if not response.choices:
            raise BackendError('LLM response contained no choices')

        choice = response.choices[0]
        raw = choice.message.content or ''
        model = getattr(response, 'model', None) or self.model

        logger.info(
            f"LLM response: model={model}, response_length={len(raw)}, finish_reason={choice.finish_reason}"
        )

        return BackendResult(
            content=parse_json_response(raw),
            raw=raw,
            model=model,
            finish_reason=choice.finish_reason,
        )

    async def close(self) -> None:
        await self.client.close()
