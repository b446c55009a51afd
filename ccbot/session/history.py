"""Per-user chat history backed by Redis.

Each user has one provider-agnostic log stored as a JSON array under
``chat:{user_id}:messages``. The log is capped at ``max_messages`` entries
(oldest evicted first) and expires ``retention_seconds`` after the last write.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ccbot.utils.redis_client import redis_delete, redis_get_json, redis_set_json

DEFAULT_MAX_MESSAGES = 100
DEFAULT_RETENTION_SECONDS = 60 * 60 * 24 * 30

# Per-provider logs written by older releases; removed on clear.
LEGACY_SOURCES = ("openai", "gemini")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ChatMessage:
    """One entry of a user's history."""
    role: str  # "user" | "assistant"
    content: str
    timestamp: int = field(default_factory=_now_ms)  # epoch milliseconds
    source: str = ""  # provider tag, never replayed to the model

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            role=str(data.get("role", "")),
            content=str(data.get("content", "")),
            timestamp=int(data.get("timestamp") or 0),
            source=str(data.get("source") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HistoryStore:
    """
    Bounded, expiring conversation log per user.

    Store failures never propagate: reads degrade to an empty history and
    writes report ``False``.
    """

    def __init__(
        self,
        redis: Redis,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        key_prefix: str = "chat",
    ):
        self.redis = redis
        self.max_messages = max(1, int(max_messages))
        self.retention_seconds = int(retention_seconds)
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}:messages"

    def _legacy_keys(self, user_id: str) -> list[str]:
        return [f"{self.key_prefix}:{user_id}:{source}:messages" for source in LEGACY_SOURCES]

    async def read(self, user_id: str) -> list[ChatMessage]:
        """Return the user's history oldest-first (empty on miss or error)."""
        try:
            raw = await redis_get_json(self.redis, self._key(user_id))
        except RedisError as e:
            logger.error(f"Failed to read chat history for {user_id}: {e}")
            return []
        if not isinstance(raw, list):
            return []

        history: list[ChatMessage] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                history.append(ChatMessage.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed history entry for {user_id}: {e}")
        return history

    async def append(self, user_id: str, role: str, content: str, source: str = "") -> bool:
        """Append one entry, evicting from the front past the cap."""
        history = await self.read(user_id)
        history.append(ChatMessage(role=role, content=content, source=source))
        while len(history) > self.max_messages:
            history.pop(0)

        try:
            await redis_set_json(
                self.redis,
                self._key(user_id),
                [m.to_dict() for m in history],
                ttl_seconds=self.retention_seconds,
            )
        except RedisError as e:
            logger.error(f"Failed to save {role} message for {user_id}: {e}")
            return False
        return True

    async def clear(self, user_id: str) -> bool:
        """Delete the user's log (and legacy per-provider logs)."""
        try:
            await redis_delete(self.redis, self._key(user_id), *self._legacy_keys(user_id))
        except RedisError as e:
            logger.error(f"Failed to clear chat history for {user_id}: {e}")
            return False
        return True

    async def replay(self, user_id: str) -> list[dict[str, str]]:
        """History in LLM format (just role and content)."""
        return [{"role": m.role, "content": m.content} for m in await self.read(user_id)]
