"""LiteLLM provider (the secondary backend).

LiteLLM gives one call surface over Gemini, Anthropic, DeepSeek and other
vendors, so the secondary backend can be any model LiteLLM can route.
"""

import os
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from ccbot.providers.base import LLMProvider, LLMResponse

DEFAULT_MODEL = "gemini/gemini-2.0-flash"

_KEY_ENV_BY_VENDOR = {
    "gemini": "GEMINI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class LiteLLMProvider(LLMProvider):
    """LLM provider using LiteLLM for multi-vendor support."""

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.timeout = timeout

        # Gemini models without a vendor prefix would be routed to Vertex.
        if "gemini" in default_model.lower() and "/" not in default_model:
            self.default_model = f"gemini/{default_model}"

        if api_key:
            vendor = self.default_model.split("/", 1)[0].lower()
            env_var = _KEY_ENV_BY_VENDOR.get(vendor)
            if env_var:
                os.environ.setdefault(env_var, api_key)

        litellm.suppress_debug_info = True

    def get_default_model(self) -> str:
        return self.default_model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        top_p: float | None = None,
        top_k: int | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout": self.timeout,
        }
        if top_p is not None:
            kwargs["top_p"] = top_p
        if top_k is not None:
            kwargs["top_k"] = top_k
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            logger.warning(f"LiteLLM call failed: {e}")
            raise
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        try:
            choice = response.choices[0]
        except (IndexError, AttributeError):
            logger.warning("LLM response has no choices")
            return LLMResponse(content=None, finish_reason="error")

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )
