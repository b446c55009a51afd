"""Discord channel implementation using discord.py."""

import asyncio
from datetime import timedelta

import discord
from loguru import logger

from ccbot.channels.base import BULK_DELETE_MAX_AGE, BaseChannel, InboundMessage, PurgeResult
from ccbot.channels.errors import PermanentDeliveryError, TemporaryDeliveryError
from ccbot.config.schema import DiscordConfig

# Discord rejects messages over 2000 characters.
MESSAGE_LIMIT = 2000


class DiscordChannel(BaseChannel):
    """
    Discord channel implementation.

    Every guild message (optionally restricted to allowlisted guilds and
    channels) is handed to the router; the router decides whether to answer.
    """

    name = "discord"

    def __init__(self, config: DiscordConfig):
        super().__init__()
        self.config = config
        self._client: discord.Client | None = None
        self._ready = asyncio.Event()
        self._bot_user_id: str | None = None

    @property
    def bot_user_id(self) -> str | None:
        return self._bot_user_id

    async def start(self) -> None:
        """Start the Discord bot and block until it disconnects."""
        if not self.config.token:
            logger.error("Discord bot token not configured")
            return

        intents = discord.Intents.default()
        intents.guilds = True
        intents.messages = True
        intents.guild_messages = True
        intents.message_content = True

        self._client = discord.Client(intents=intents)

        @self._client.event
        async def on_ready():
            if not self._client or not self._client.user:
                return
            self._bot_user_id = str(self._client.user.id)
            self._ready.set()
            logger.info(f"Discord bot connected as {self._client.user}")

        @self._client.event
        async def on_message(message: discord.Message):
            await self._on_message(message)

        self._running = True
        try:
            await self._client.start(self.config.token)
        except asyncio.CancelledError:
            pass
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the Discord bot."""
        self._running = False
        if self._client:
            await self._client.close()
            self._client = None
        self._ready.clear()

    async def _on_message(self, message: discord.Message) -> None:
        """Handle incoming messages from Discord."""
        if not self._running or self.handler is None:
            return
        if not self._should_process_message(message):
            return
        await self.handler(self._to_inbound(message))

    def _should_process_message(self, message: discord.Message) -> bool:
        """Check guild/channel allowlists."""
        if message.guild is None:
            return False
        if self.config.allow_guilds and str(message.guild.id) not in self.config.allow_guilds:
            return False
        if self.config.allow_channels and str(message.channel.id) not in self.config.allow_channels:
            return False
        return True

    def _to_inbound(self, message: discord.Message) -> InboundMessage:
        reply_to_id = None
        if message.reference and message.reference.message_id:
            reply_to_id = str(message.reference.message_id)
        return InboundMessage(
            message_id=str(message.id),
            sender_id=str(message.author.id),
            channel_id=str(message.channel.id),
            content=message.content or "",
            reply_to_id=reply_to_id,
            author_is_bot=bool(message.author.bot),
            guild_id=str(message.guild.id) if message.guild else None,
            sender_name=message.author.name or "",
            timestamp=message.created_at,
        )

    async def _get_channel(self, channel_id: str) -> discord.abc.GuildChannel | discord.Thread:
        if not self._client:
            raise TemporaryDeliveryError("Discord client not initialized")
        try:
            cid = int(channel_id)
        except ValueError:
            raise PermanentDeliveryError(f"Invalid Discord channel id: {channel_id}")
        channel = self._client.get_channel(cid)
        if channel is None:
            try:
                channel = await self._client.fetch_channel(cid)
            except discord.NotFound as e:
                raise PermanentDeliveryError(f"Discord channel not found: {channel_id}") from e
        return channel

    def _split_message(self, content: str, limit: int = MESSAGE_LIMIT) -> list[str]:
        """Split long messages to fit Discord limits."""
        if not content:
            return []
        if len(content) <= limit:
            return [content]

        chunks = []
        remaining = content
        while len(remaining) > limit:
            split_at = remaining.rfind("\n", 0, limit)
            if split_at <= 0:
                split_at = limit
            chunks.append(remaining[:split_at])
            remaining = remaining[split_at:].lstrip("\n")
        if remaining:
            chunks.append(remaining)
        return chunks

    async def _deliver(self, channel_id: str, content: str, reply_to: str | None = None) -> str | None:
        channel = await self._get_channel(channel_id)
        chunks = [chunk for chunk in self._split_message(content) if chunk.strip()]
        if not chunks:
            raise PermanentDeliveryError("Empty Discord message content")

        allowed_mentions = discord.AllowedMentions(everyone=False, roles=False, users=True)
        first_id: str | None = None
        try:
            for i, chunk in enumerate(chunks):
                if i == 0 and reply_to:
                    target = channel.get_partial_message(int(reply_to))
                    sent = await target.reply(chunk, allowed_mentions=allowed_mentions)
                else:
                    sent = await channel.send(chunk, allowed_mentions=allowed_mentions)
                if first_id is None:
                    first_id = str(sent.id)
        except discord.Forbidden as e:
            raise PermanentDeliveryError(f"Discord forbidden: {e}") from e
        except discord.NotFound as e:
            raise PermanentDeliveryError(f"Discord not found: {e}") from e
        except discord.HTTPException as e:
            raise TemporaryDeliveryError(f"Discord HTTP error: {e}") from e
        return first_id

    async def send(self, channel_id: str, content: str) -> str | None:
        return await self._deliver(channel_id, content)

    async def reply(self, message: InboundMessage, content: str) -> str | None:
        return await self._deliver(message.channel_id, content, reply_to=message.message_id)

    async def show_typing(self, channel_id: str) -> None:
        if not self.config.typing_indicator:
            return
        channel = await self._get_channel(channel_id)
        await channel.typing()

    async def react(self, channel_id: str, message_id: str, emoji: str) -> None:
        channel = await self._get_channel(channel_id)
        await channel.get_partial_message(int(message_id)).add_reaction(emoji)

    async def fetch_author_id(self, channel_id: str, message_id: str) -> str | None:
        channel = await self._get_channel(channel_id)
        fetched = await channel.fetch_message(int(message_id))
        return str(fetched.author.id)

    async def member_can_manage(self, message: InboundMessage) -> bool:
        if not self._client or not message.guild_id:
            return False
        guild = self._client.get_guild(int(message.guild_id))
        if guild is None:
            return False
        member = guild.get_member(int(message.sender_id))
        if member is None:
            member = await guild.fetch_member(int(message.sender_id))
        return member.guild_permissions.manage_messages

    async def bot_can_manage(self, channel_id: str) -> bool:
        channel = await self._get_channel(channel_id)
        guild = getattr(channel, "guild", None)
        if guild is None:
            return False
        return channel.permissions_for(guild.me).manage_messages

    async def is_text_channel(self, channel_id: str) -> bool:
        channel = await self._get_channel(channel_id)
        return isinstance(channel, discord.TextChannel)

    async def find_channel(self, guild_id: str | None, *, channel_id: str | None = None,
                           name: str | None = None) -> str | None:
        if not self._client or not guild_id:
            return None
        guild = self._client.get_guild(int(guild_id))
        if guild is None:
            return None
        if channel_id:
            found = guild.get_channel(int(channel_id))
        elif name:
            wanted = name.lower()
            found = discord.utils.find(lambda c: c.name.lower() == wanted, guild.channels)
        else:
            found = None
        return str(found.id) if found else None

    async def purge_recent(self, channel_id: str, max_age: timedelta = BULK_DELETE_MAX_AGE) -> PurgeResult:
        """Delete recent messages in batches of 100, newest first."""
        channel = await self._get_channel(channel_id)
        cutoff = discord.utils.utcnow() - max_age
        result = PurgeResult()
        before: discord.Object | None = None

        try:
            while True:
                batch = [m async for m in channel.history(limit=100, before=before)]
                if not batch:
                    break
                before = discord.Object(id=batch[-1].id)

                recent = [m for m in batch if m.created_at > cutoff]
                if not recent:
                    result.older_remaining = True
                    break

                await channel.delete_messages(recent)
                result.deleted += len(recent)

                if len(recent) < len(batch):
                    result.older_remaining = True
                    break
        except discord.Forbidden as e:
            raise PermanentDeliveryError(f"Discord forbidden: {e}") from e
        except discord.HTTPException as e:
            raise TemporaryDeliveryError(f"Discord HTTP error: {e}") from e

        logger.info(f"Purged {result.deleted} messages from channel {channel_id}")
        return result
