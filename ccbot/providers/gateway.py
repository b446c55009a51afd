"""Completion gateway: one call surface over the two backends.

Retry policy:
- primary: only rate-limit errors are retried, with exponential backoff;
  anything else propagates immediately.
- secondary: every error is retried with the same backoff; once retries are
  exhausted the request is re-issued against the primary.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from ccbot.providers.base import CompletionError, LLMProvider, ProviderId, is_rate_limited

KNOWLEDGE_INSTRUCTION = "请参考以下知识库中的信息回答用户问题："


@dataclass
class ProviderBinding:
    """A backend plus everything needed to talk to it."""
    id: ProviderId
    provider: LLMProvider
    label: str
    marker: str
    model: str | None = None
    temperature: float = 0.7
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int = 2048

    def frame_request(
        self,
        system_prompt: str,
        history: list[dict[str, str]],
        query: str,
        knowledge: str | None = None,
    ) -> list[dict[str, str]]:
        """Build the message list: system entry, replayed history, then the query."""
        system = system_prompt
        if knowledge:
            system += f"\n\n{KNOWLEDGE_INSTRUCTION}\n{knowledge}"
        messages = [{"role": "system", "content": system}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in history)
        messages.append({"role": "user", "content": query})
        return messages

    async def send(self, messages: list[dict[str, Any]]) -> str:
        response = await self.provider.chat(
            messages,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            top_k=self.top_k,
        )
        content = (response.content or "").strip()
        if not content:
            raise CompletionError(
                f"{self.label} returned an empty response (finish_reason={response.finish_reason})"
            )
        return content


class CompletionGateway:
    """Routes completion requests to a backend with retry and fallback."""

    def __init__(
        self,
        primary: ProviderBinding,
        secondary: ProviderBinding,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._bindings = {
            ProviderId.PRIMARY: primary,
            ProviderId.SECONDARY: secondary,
        }
        self.max_retries = max(0, int(max_retries))
        self.base_delay = float(base_delay)
        self._sleep = sleep

    def binding(self, provider_id: ProviderId) -> ProviderBinding:
        return self._bindings[ProviderId(provider_id)]

    def _delay(self, retry: int) -> float:
        return self.base_delay * (2 ** retry)

    async def complete(self, provider_id: ProviderId, messages: list[dict[str, Any]]) -> str:
        """Return the full reply text for ``messages``.

        Raises:
            CompletionError: if every attempt (and the fallback) failed.
        """
        provider_id = ProviderId(provider_id)
        if provider_id == ProviderId.PRIMARY:
            return await self._complete_primary(messages)

        try:
            return await self._complete_secondary(messages)
        except CompletionError as e:
            logger.warning(f"Secondary backend exhausted ({e}); falling back to primary")
            return await self._complete_primary(messages)

    async def _complete_primary(self, messages: list[dict[str, Any]]) -> str:
        binding = self._bindings[ProviderId.PRIMARY]
        retries = 0
        while True:
            try:
                return await binding.send(messages)
            except CompletionError:
                raise
            except Exception as e:
                if not is_rate_limited(e):
                    raise CompletionError(f"{binding.label} request failed: {e}") from e
                if retries >= self.max_retries:
                    raise CompletionError(
                        f"{binding.label} still rate limited after {retries} retries"
                    ) from e
                retries += 1
                delay = self._delay(retries)
                logger.warning(
                    f"Rate limit hit on {binding.label}, retrying {retries}/{self.max_retries} "
                    f"in {delay:.1f}s"
                )
                await self._sleep(delay)

    async def _complete_secondary(self, messages: list[dict[str, Any]]) -> str:
        binding = self._bindings[ProviderId.SECONDARY]
        retries = 0
        while True:
            try:
                return await binding.send(messages)
            except Exception as e:
                if retries >= self.max_retries:
                    raise CompletionError(
                        f"{binding.label} failed after {retries} retries: {e}"
                    ) from e
                retries += 1
                delay = self._delay(retries)
                logger.warning(
                    f"{binding.label} call failed, retrying {retries}/{self.max_retries} "
                    f"in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)
