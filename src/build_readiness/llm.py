"""OpenAI client wrapper and draft response parsing.

This module owns both sides of the untrusted boundary:
- ``LLMClient`` sends instructions to OpenAI and returns raw text
- ``parse_draft`` turns that text into a validated ``DraftOutput``

Parsing is two-phase on purpose: first text -> generic JSON value, then
JSON value -> ``DraftOutput``. Either phase raises ``UpstreamParseError``,
which is the only error class the agent retries.
"""

from __future__ import annotations

import json
import os
import re
from typing import Any

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from build_readiness.errors import ConfigurationError, UpstreamParseError
from build_readiness.schemas import DraftOutput

# ```json { ... } ``` or ``` { ... } ```
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


class LLMConfig(BaseModel):
    """Configuration for the LLM client.

    Attributes:
        model: OpenAI chat model identifier
        temperature: Sampling temperature; drafts use moderate randomness
        max_tokens: Upper bound on response length
        api_key: OpenAI API key (falls back to OPENAI_API_KEY)
    """

    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1500
    api_key: str | None = None


class LLMClient:
    """Async wrapper around the OpenAI chat completions API.

    Usage:
        client = LLMClient(config=LLMConfig())
        text = await client.complete(system_prompt, user_prompt)

    The underlying AsyncOpenAI client is created on first use so that a
    missing credential surfaces as ``ConfigurationError`` per request rather
    than at startup.
    """

    def __init__(self, config: LLMConfig | None = None) -> None:
        self.config = config or LLMConfig()
        self._client: AsyncOpenAI | None = None

    @property
    def api_key(self) -> str | None:
        return self.config.api_key or os.environ.get("OPENAI_API_KEY") or None

    def ensure_configured(self) -> None:
        """Raise ConfigurationError if no OpenAI credential is available."""
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self.ensure_configured()
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Send one system + user exchange and return the response text.

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamParseError: If the response carries no content
            openai.APIError: On transport or provider failures
        """
        response = await self._get_client().chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamParseError("No content returned from OpenAI")
        return content


# ---------------------------------------------------------------------------
# Response Parsing
# ---------------------------------------------------------------------------


def extract_json_text(content: str) -> str:
    """Return the object inside a fenced code block, else the trimmed text."""
    match = _FENCED_JSON_RE.search(content)
    if match:
        return match.group(1)
    return content.strip()


def parse_json(content: str) -> Any:
    """Phase one: raw model text to a generic JSON value."""
    text = extract_json_text(content)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise UpstreamParseError(f"Response is not valid JSON: {exc}") from exc


def validate_draft(data: Any) -> DraftOutput:
    """Phase two: generic JSON value to a validated DraftOutput."""
    try:
        return DraftOutput.model_validate(data)
    except ValidationError as exc:
        raise UpstreamParseError(f"Response does not match the draft schema: {exc}") from exc


def parse_draft(content: str) -> DraftOutput:
    return validate_draft(parse_json(content))
