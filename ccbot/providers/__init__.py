"""LLM provider abstraction module."""

from ccbot.providers.base import CompletionError, LLMProvider, LLMResponse, ProviderId
from ccbot.providers.gateway import CompletionGateway, ProviderBinding

__all__ = [
    "CompletionError",
    "CompletionGateway",
    "LLMProvider",
    "LLMResponse",
    "ProviderBinding",
    "ProviderId",
]
