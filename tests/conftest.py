from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ccbot.channels.base import BULK_DELETE_MAX_AGE, BaseChannel, InboundMessage, PurgeResult
from ccbot.channels.errors import PermanentDeliveryError


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the history store."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis is down")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


class FakeChannel(BaseChannel):
    """Records everything the router does to the platform."""

    name = "fake"

    def __init__(self, bot_id: str = "bot") -> None:
        super().__init__()
        self._bot_id = bot_id
        self._next_id = 1000
        self.sent: list[tuple[str, str]] = []  # (channel_id, content)
        self.replies: list[tuple[str, str]] = []  # (replied-to message_id, content)
        self.reactions: list[tuple[str, str]] = []  # (message_id, emoji)
        self.typing: list[str] = []
        self.authors: dict[str, str] = {}
        self.fail_reply = False
        self.fail_react = False
        self.fail_fetch = False
        self.member_manage = True
        self.bot_manage = True
        self.text_channels: set[str] | None = None  # None = every channel is text
        self.named_channels: dict[str, str] = {}
        self.purge_result = PurgeResult(deleted=3)
        self.purged: list[str] = []

    @property
    def bot_user_id(self) -> str | None:
        return self._bot_id

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    @property
    def all_text(self) -> list[str]:
        return [c for _, c in self.replies] + [c for _, c in self.sent]

    async def send(self, channel_id: str, content: str) -> str | None:
        self.sent.append((channel_id, content))
        return self._new_id()

    async def reply(self, message: InboundMessage, content: str) -> str | None:
        if self.fail_reply:
            raise PermanentDeliveryError("cannot reply")
        self.replies.append((message.message_id, content))
        return self._new_id()

    async def show_typing(self, channel_id: str) -> None:
        self.typing.append(channel_id)

    async def react(self, channel_id: str, message_id: str, emoji: str) -> None:
        if self.fail_react:
            raise RuntimeError("reaction refused")
        self.reactions.append((message_id, emoji))

    async def fetch_author_id(self, channel_id: str, message_id: str) -> str | None:
        if self.fail_fetch:
            raise RuntimeError("unknown message")
        return self.authors.get(message_id)

    async def member_can_manage(self, message: InboundMessage) -> bool:
        return self.member_manage

    async def bot_can_manage(self, channel_id: str) -> bool:
        return self.bot_manage

    async def is_text_channel(self, channel_id: str) -> bool:
        return self.text_channels is None or channel_id in self.text_channels

    async def find_channel(self, guild_id: str | None, *, channel_id: str | None = None,
                           name: str | None = None) -> str | None:
        if channel_id:
            return channel_id if channel_id in self.named_channels.values() else None
        if name:
            return self.named_channels.get(name.lower())
        return None

    async def purge_recent(self, channel_id: str, max_age: timedelta = BULK_DELETE_MAX_AGE) -> PurgeResult:
        self.purged.append(channel_id)
        return self.purge_result


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_counter = iter(range(1, 1_000_000))


def make_message(content: str, sender: str = "u1", channel: str = "c1", **kwargs: Any) -> InboundMessage:
    return InboundMessage(
        message_id=f"m{next(_counter)}",
        sender_id=sender,
        channel_id=channel,
        content=content,
        guild_id=kwargs.pop("guild_id", "g1"),
        **kwargs,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def message_factory():
    return make_message
