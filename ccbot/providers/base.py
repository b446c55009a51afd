"""Base LLM provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderId(str, Enum):
    """Which of the two completion backends handles a conversation."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class CompletionError(RuntimeError):
    """Raised when no backend produced a usable completion."""


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


def is_rate_limited(error: BaseException) -> bool:
    """True if the error is the provider telling us to slow down (HTTP 429)."""
    if type(error).__name__ == "RateLimitError":
        return True
    for attr in ("status_code", "status"):
        if getattr(error, attr, None) == 429:
            return True
    return False


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations send a whole conversation and return the whole reply;
    they raise on failure and leave retrying to the caller.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        top_p: float | None = None,
        top_k: int | None = None,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.
            top_p: Nucleus sampling mass.
            top_k: Top-k sampling cutoff, for backends that support it.

        Returns:
            LLMResponse with the generated text.
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
