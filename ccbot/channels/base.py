"""Chat platform interface consumed by the router."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

# Bulk deletion is refused by the platform for anything older than this.
BULK_DELETE_MAX_AGE = timedelta(days=14)


@dataclass
class InboundMessage:
    """Message received from the chat platform."""

    message_id: str
    sender_id: str
    channel_id: str
    content: str
    reply_to_id: str | None = None  # Id of the message this one replies to
    author_is_bot: bool = False
    guild_id: str | None = None
    sender_name: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def session_key(self) -> tuple[str, str]:
        """Unique key for session identification."""
        return (self.sender_id, self.channel_id)

    @property
    def is_reply(self) -> bool:
        return bool(self.reply_to_id)


@dataclass
class PurgeResult:
    """Outcome of a bulk delete."""
    deleted: int = 0
    older_remaining: bool = False  # Stopped at messages past the age ceiling


MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class BaseChannel(ABC):
    """
    Abstract chat platform.

    Implementations deliver inbound messages to ``handler`` and expose the
    handful of operations the router needs. Message-sending methods return
    the id of the message they created.
    """

    name: str = "base"

    def __init__(self) -> None:
        self.handler: MessageHandler | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def set_handler(self, handler: MessageHandler) -> None:
        self.handler = handler

    @property
    @abstractmethod
    def bot_user_id(self) -> str | None:
        """The bot's own user id once connected."""

    @abstractmethod
    async def send(self, channel_id: str, content: str) -> str | None:
        """Send a new message to a channel."""

    @abstractmethod
    async def reply(self, message: InboundMessage, content: str) -> str | None:
        """Reply to ``message`` in its channel."""

    @abstractmethod
    async def show_typing(self, channel_id: str) -> None:
        """Show the typing indicator in a channel."""

    @abstractmethod
    async def react(self, channel_id: str, message_id: str, emoji: str) -> None:
        """Add an emoji reaction to a message."""

    @abstractmethod
    async def fetch_author_id(self, channel_id: str, message_id: str) -> str | None:
        """Return the author id of a message."""

    @abstractmethod
    async def member_can_manage(self, message: InboundMessage) -> bool:
        """True if the sender may manage messages where they wrote ``message``."""

    @abstractmethod
    async def bot_can_manage(self, channel_id: str) -> bool:
        """True if the bot may manage messages in ``channel_id``."""

    @abstractmethod
    async def is_text_channel(self, channel_id: str) -> bool:
        """True if ``channel_id`` is a guild text channel."""

    @abstractmethod
    async def find_channel(self, guild_id: str | None, *, channel_id: str | None = None,
                           name: str | None = None) -> str | None:
        """Look up a channel in a guild by id or by (case-insensitive) name."""

    @abstractmethod
    async def purge_recent(self, channel_id: str, max_age: timedelta = BULK_DELETE_MAX_AGE) -> PurgeResult:
        """Delete every message in the channel newer than ``max_age``."""
