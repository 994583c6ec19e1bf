# tests/test_llm_client.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from learn_buddy.core.errors import GenerationError
from learn_buddy.llm.client import OpenRouterLLMClient, friendly_llm_error_message


class AuthenticationError(Exception):
    pass


class APITimeoutError(Exception):
    pass


def test_friendly_messages_by_error_class() -> None:
    assert "authentication" in friendly_llm_error_message(AuthenticationError("401"))
    assert "timeout" in friendly_llm_error_message(APITimeoutError())
    assert friendly_llm_error_message(ValueError("weird")) == "weird"


def test_client_requires_api_key(settings) -> None:
    with pytest.raises(RuntimeError):
        OpenRouterLLMClient(settings)


def _client(settings) -> OpenRouterLLMClient:
    settings.openrouter_api_key = "sk-test"
    return OpenRouterLLMClient(settings)


@pytest.mark.asyncio
async def test_generate_returns_message_content(settings, monkeypatch) -> None:
    client = _client(settings)
    calls: list[dict] = []

    async def fake_create(**kwargs):
        calls.append(kwargs)
        msg = SimpleNamespace(content='{"suggestion": "ok"}')
        return SimpleNamespace(choices=[SimpleNamespace(message=msg)])

    monkeypatch.setattr(client._client.chat.completions, "create", fake_create)

    out = await client.generate(
        operation="suggest-organization",
        system_prompt="sys",
        user_prompt="user",
        output_schema={},
        payload={"tasks": ["a"]},
    )
    assert out == '{"suggestion": "ok"}'
    assert calls[0]["model"] == "test-model"
    assert calls[0]["response_format"] == {"type": "json_object"}
    await client.close()


@pytest.mark.asyncio
async def test_generate_translates_provider_errors(settings, monkeypatch) -> None:
    client = _client(settings)

    async def fake_create(**kwargs):
        raise APITimeoutError("slow")

    monkeypatch.setattr(client._client.chat.completions, "create", fake_create)

    with pytest.raises(GenerationError, match="timeout"):
        await client.generate(
            operation="estimate-effort",
            system_prompt="sys",
            user_prompt="user",
            output_schema={},
            payload={},
        )
    await client.close()
