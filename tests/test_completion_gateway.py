"""Tests for retry, backoff and fallback in the completion gateway."""

from __future__ import annotations

from typing import Any

import httpx
import openai
import pytest

from ccbot.providers.base import CompletionError, LLMProvider, LLMResponse, ProviderId, is_rate_limited
from ccbot.providers.gateway import KNOWLEDGE_INSTRUCTION, CompletionGateway, ProviderBinding


class _HTTPError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class _ScriptedProvider(LLMProvider):
    """Raises or answers according to a script, one entry per call."""

    def __init__(self, script: list[Any]) -> None:
        super().__init__(api_key="test")
        self.script = list(script)
        self.calls: list[list[dict[str, Any]]] = []

    async def chat(self, messages, model=None, max_tokens=2048, temperature=0.7, top_p=None, top_k=None):
        self.calls.append(messages)
        step = self.script.pop(0) if self.script else "ok"
        if isinstance(step, BaseException):
            raise step
        return LLMResponse(content=step)

    def get_default_model(self) -> str:
        return "stub-model"


def _rate_limit() -> openai.RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError(
        "Rate limit reached", response=httpx.Response(429, request=request), body=None
    )


def _gateway(primary: LLMProvider, secondary: LLMProvider, sleeps: list[float]) -> CompletionGateway:
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return CompletionGateway(
        ProviderBinding(ProviderId.PRIMARY, primary, label="OpenAI", marker="🤖"),
        ProviderBinding(ProviderId.SECONDARY, secondary, label="Gemini", marker="✨"),
        max_retries=3,
        base_delay=1.0,
        sleep=_sleep,
    )


MESSAGES = [{"role": "user", "content": "hello"}]


def test_rate_limit_detection() -> None:
    assert is_rate_limited(_rate_limit())
    assert is_rate_limited(_HTTPError(429))
    assert not is_rate_limited(_HTTPError(500))
    assert not is_rate_limited(ValueError("boom"))


@pytest.mark.asyncio
async def test_primary_retries_rate_limits_with_doubling_backoff() -> None:
    primary = _ScriptedProvider([_rate_limit(), _rate_limit(), "third time lucky"])
    secondary = _ScriptedProvider([])
    sleeps: list[float] = []

    text = await _gateway(primary, secondary, sleeps).complete(ProviderId.PRIMARY, MESSAGES)

    assert text == "third time lucky"
    assert sleeps == [2.0, 4.0]
    assert len(primary.calls) == 3
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_primary_other_errors_are_not_retried() -> None:
    primary = _ScriptedProvider([_HTTPError(500), "never reached"])
    sleeps: list[float] = []

    with pytest.raises(CompletionError):
        await _gateway(primary, _ScriptedProvider([]), sleeps).complete(ProviderId.PRIMARY, MESSAGES)

    assert sleeps == []
    assert len(primary.calls) == 1


@pytest.mark.asyncio
async def test_primary_gives_up_after_max_retries() -> None:
    primary = _ScriptedProvider([_HTTPError(429)] * 10)
    sleeps: list[float] = []

    with pytest.raises(CompletionError):
        await _gateway(primary, _ScriptedProvider([]), sleeps).complete(ProviderId.PRIMARY, MESSAGES)

    assert sleeps == [2.0, 4.0, 8.0]
    assert len(primary.calls) == 4


@pytest.mark.asyncio
async def test_secondary_retries_any_error() -> None:
    secondary = _ScriptedProvider([RuntimeError("overloaded"), "gemini says hi"])
    primary = _ScriptedProvider([])
    sleeps: list[float] = []

    text = await _gateway(primary, secondary, sleeps).complete(ProviderId.SECONDARY, MESSAGES)

    assert text == "gemini says hi"
    assert sleeps == [2.0]
    assert primary.calls == []


@pytest.mark.asyncio
async def test_secondary_falls_back_to_primary_when_exhausted() -> None:
    secondary = _ScriptedProvider([RuntimeError("down")] * 4)
    primary = _ScriptedProvider(["openai to the rescue"])
    sleeps: list[float] = []

    text = await _gateway(primary, secondary, sleeps).complete(ProviderId.SECONDARY, MESSAGES)

    assert text == "openai to the rescue"
    assert len(secondary.calls) == 4
    assert len(primary.calls) == 1
    assert primary.calls[0] == MESSAGES


@pytest.mark.asyncio
async def test_failure_surfaces_when_fallback_also_fails() -> None:
    secondary = _ScriptedProvider([RuntimeError("down")] * 4)
    primary = _ScriptedProvider([_HTTPError(401)])

    with pytest.raises(CompletionError):
        await _gateway(primary, secondary, []).complete(ProviderId.SECONDARY, MESSAGES)


@pytest.mark.asyncio
async def test_empty_response_is_an_error() -> None:
    primary = _ScriptedProvider(["   "])

    with pytest.raises(CompletionError):
        await _gateway(primary, _ScriptedProvider([]), []).complete(ProviderId.PRIMARY, MESSAGES)


def test_frame_request_orders_system_history_and_query() -> None:
    binding = ProviderBinding(ProviderId.PRIMARY, _ScriptedProvider([]), label="OpenAI", marker="🤖")
    history = [
        {"role": "user", "content": "earlier question"},
        {"role": "assistant", "content": "earlier answer"},
    ]

    messages = binding.frame_request("Discord Chat Bot", history, "new question")

    assert messages[0] == {"role": "system", "content": "Discord Chat Bot"}
    assert messages[1:3] == history
    assert messages[-1] == {"role": "user", "content": "new question"}


def test_frame_request_appends_knowledge_to_system_prompt() -> None:
    binding = ProviderBinding(ProviderId.SECONDARY, _ScriptedProvider([]), label="Gemini", marker="✨")

    messages = binding.frame_request("Discord Chat Bot", [], "营业时间?", knowledge="每天9点到18点")

    system = messages[0]["content"]
    assert system.startswith("Discord Chat Bot")
    assert KNOWLEDGE_INSTRUCTION in system
    assert system.endswith("每天9点到18点")
    assert messages[-1]["content"] == "营业时间?"
