"""OpenAI chat completions provider (the primary backend).

Uses the `openai` Python package directly. Retries are disabled on the SDK
client because the completion gateway owns the retry policy.
"""

import re
from typing import Any

from loguru import logger
from openai import AsyncOpenAI

from ccbot.providers.base import LLMProvider, LLMResponse

DEFAULT_MODEL = "gpt-4o-mini"


def _normalize_api_key(value: str | None) -> str:
    """Keep only the raw secret from keys pasted as ``Bearer sk-...``."""
    token = (value or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token


def _strip_leading_think_blocks(text: str | None) -> str | None:
    """Remove leaked leading <think>...</think> blocks from model output."""
    if not isinstance(text, str):
        return text

    pattern = re.compile(
        r"^\s*(?:<think\b[^>]*>[\s\S]*?<\/think>\s*)+",
        flags=re.IGNORECASE,
    )
    match = pattern.match(text)
    if not match:
        return text

    remainder = text[match.end():].lstrip()
    if remainder:
        return remainder
    return re.sub(r"</?think\b[^>]*>", "", text, flags=re.IGNORECASE).strip()


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str | None = None,
        timeout: float = 60.0,
    ):
        super().__init__(_normalize_api_key(api_key), api_base)
        self._default_model = default_model or DEFAULT_MODEL
        self.client = AsyncOpenAI(
            api_key=self.api_key or None,
            base_url=api_base,
            max_retries=0,
            timeout=timeout,
        )

    def get_default_model(self) -> str:
        return self._default_model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        top_p: float | None = None,
        top_k: int | None = None,
    ) -> LLMResponse:
        # The OpenAI API has no top_k parameter.
        del top_k
        kwargs: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if top_p is not None:
            kwargs["top_p"] = top_p

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.warning(f"OpenAI API error: {e}")
            raise
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse an OpenAI chat completion response into LLMResponse."""
        choice = response.choices[0]
        content = _strip_leading_think_blocks(choice.message.content)

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens or 0,
                "completion_tokens": response.usage.completion_tokens or 0,
                "total_tokens": response.usage.total_tokens or 0,
            }

        return LLMResponse(
            content=content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )
