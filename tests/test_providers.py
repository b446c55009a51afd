from types import SimpleNamespace

import pytest

from ccbot.providers import litellm_provider
from ccbot.providers.litellm_provider import LiteLLMProvider
from ccbot.providers.openai_provider import OpenAIProvider, _normalize_api_key, _strip_leading_think_blocks


def _completion(content, finish_reason="stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=5, total_tokens=8),
    )


def test_strip_leading_think_block_with_answer() -> None:
    raw = "<think>internal reasoning</think>\nFinal answer."
    assert _strip_leading_think_blocks(raw) == "Final answer."


def test_unwrap_when_only_think_block_exists() -> None:
    assert _strip_leading_think_blocks("<think>Only visible text</think>") == "Only visible text"


def test_preserve_non_think_content() -> None:
    assert _strip_leading_think_blocks("No think tags here.") == "No think tags here."


def test_bearer_prefix_is_removed_from_api_key() -> None:
    assert _normalize_api_key("Bearer sk-abc ") == "sk-abc"
    assert _normalize_api_key(None) == ""


@pytest.mark.asyncio
async def test_openai_provider_drops_top_k() -> None:
    provider = OpenAIProvider(api_key="sk-test", default_model="gpt-4o-mini")
    captured = {}

    async def create(**kwargs):
        captured.update(kwargs)
        return _completion("<think>hmm</think>hello")

    provider.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    response = await provider.chat([{"role": "user", "content": "hi"}], top_p=0.9, top_k=40)

    assert response.content == "hello"
    assert response.usage["total_tokens"] == 8
    assert captured["model"] == "gpt-4o-mini"
    assert captured["top_p"] == 0.9
    assert "top_k" not in captured


@pytest.mark.asyncio
async def test_litellm_provider_passes_sampling_options(monkeypatch) -> None:
    captured = {}

    async def fake_acompletion(**kwargs):
        captured.update(kwargs)
        return _completion("bonjour")

    monkeypatch.setattr(litellm_provider, "acompletion", fake_acompletion)
    monkeypatch.setenv("GEMINI_API_KEY", "already-set")
    provider = LiteLLMProvider(api_key="gem-key", default_model="gemini-2.0-flash")

    response = await provider.chat([{"role": "user", "content": "hi"}], temperature=0.9, top_p=0.95, top_k=40)

    assert response.content == "bonjour"
    assert provider.get_default_model() == "gemini/gemini-2.0-flash"
    assert captured["model"] == "gemini/gemini-2.0-flash"
    assert captured["top_k"] == 40
    assert captured["api_key"] == "gem-key"


def test_litellm_response_without_choices() -> None:
    provider = LiteLLMProvider()
    response = provider._parse_response(SimpleNamespace(choices=[]))
    assert response.content is None
    assert response.finish_reason == "error"
