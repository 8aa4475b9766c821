"""Tests for the LLM client wrapper and draft response parsing.

The OpenAI client is replaced by a MagicMock; no network calls are made.

Run with: pytest tests/test_llm.py -v
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from build_readiness.errors import ConfigurationError, UpstreamParseError
from build_readiness.llm import (
    LLMClient,
    LLMConfig,
    extract_json_text,
    parse_draft,
    parse_json,
    validate_draft,
)

from conftest import VALID_DRAFT


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


class TestExtractJsonText:
    """Tests for extract_json_text."""

    def test_json_fence(self) -> None:
        content = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert extract_json_text(content) == '{"a": 1}'

    def test_bare_fence(self) -> None:
        assert extract_json_text('```\n{"a": {"b": 2}}\n```') == '{"a": {"b": 2}}'

    def test_plain_text_is_trimmed(self) -> None:
        assert extract_json_text('  \n{"a": 1}\n ') == '{"a": 1}'

    def test_fence_without_object_falls_back(self) -> None:
        content = "```json\n[1, 2]\n```"
        assert extract_json_text(content) == content


class TestParsing:
    """Tests for the two-phase parse and validate step."""

    def test_fenced_valid_draft_round_trips(self) -> None:
        content = f"```json\n{json.dumps(VALID_DRAFT, indent=2)}\n```"
        assert parse_draft(content).model_dump(by_alias=True) == VALID_DRAFT

    def test_invalid_json(self) -> None:
        with pytest.raises(UpstreamParseError, match="not valid JSON"):
            parse_json("Sure! Here is the draft: purpose ...")

    def test_schema_violation(self) -> None:
        with pytest.raises(UpstreamParseError, match="draft schema"):
            validate_draft({"purpose": "x", "highlights": []})

    def test_non_object_json(self) -> None:
        with pytest.raises(UpstreamParseError):
            parse_draft("[1, 2, 3]")


class TestLLMClient:
    """Tests for LLMClient."""

    def test_ensure_configured_without_key(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            LLMClient(LLMConfig()).ensure_configured()

    def test_key_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        client = LLMClient()
        client.ensure_configured()
        assert client.api_key == "sk-env"

    def test_default_generation_parameters(self) -> None:
        config = LLMConfig()
        assert config.temperature == 0.7
        assert config.max_tokens == 1500

    @pytest.mark.asyncio
    async def test_complete_sends_both_messages(self) -> None:
        client = LLMClient(LLMConfig(api_key="sk-test", model="gpt-4o-mini"))
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(return_value=_completion('{"ok": true}'))
        client._client = fake

        text = await client.complete("system text", "user text")

        assert text == '{"ok": true}'
        kwargs = fake.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "user text"},
        ]
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 1500

    @pytest.mark.asyncio
    async def test_complete_empty_content_is_parse_error(self) -> None:
        client = LLMClient(LLMConfig(api_key="sk-test"))
        fake = MagicMock()
        fake.chat.completions.create = AsyncMock(return_value=_completion(None))
        client._client = fake

        with pytest.raises(UpstreamParseError):
            await client.complete("s", "u")

    @pytest.mark.asyncio
    async def test_complete_without_key_raises(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            await LLMClient(LLMConfig()).complete("s", "u")
