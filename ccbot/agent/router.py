"""
Message router: decides what to do with every inbound message.

Order of precedence:
1. messages from bots (including ourselves) are ignored;
2. an affirmative reply to a pending confirmation is consumed by it;
3. a trigger prefix starts (or switches) a session and is answered;
4. inside an active session, plain messages and replies to the bot are answered;
5. inside an active session, replies to other users only keep the session alive;
6. everything else is ignored.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from ccbot.agent.commands import (
    ClearChannelCommand,
    ClearMemoryCommand,
    is_clear_channel_command,
    is_clear_memory_command,
)
from ccbot.agent.confirmation import ConfirmationWorkflow, is_affirmative
from ccbot.agent.knowledge import KnowledgeBase
from ccbot.channels.base import BaseChannel, InboundMessage
from ccbot.channels.errors import OutboundDeliveryError
from ccbot.config.schema import DEFAULT_SYSTEM_PROMPT
from ccbot.providers.base import ProviderId
from ccbot.providers.gateway import CompletionGateway
from ccbot.session.history import HistoryStore
from ccbot.session.manager import Session, SessionManager

SESSION_EMOJI = "💬"
GENERIC_FAILURE = "很抱歉，处理您的请求时出现了问题。请稍后再试。"

_ZERO_WIDTH = dict.fromkeys(map(ord, "\u200b\u200c\u200d\u2060\ufeff"))


class Action(str, Enum):
    RESPOND = "respond"
    REFRESH = "refresh"  # keep the session alive, say nothing
    IGNORE = "ignore"


@dataclass
class Disposition:
    action: Action
    query: str = ""
    provider: ProviderId | None = None
    force_new: bool = False


def normalize_text(text: str) -> str:
    """Fold full-width characters and drop zero-width/leading whitespace."""
    return unicodedata.normalize("NFKC", text or "").translate(_ZERO_WIDTH).lstrip()


class MessageRouter:
    """Per-message state machine over sessions, confirmations and completions."""

    def __init__(
        self,
        channel: BaseChannel,
        sessions: SessionManager,
        confirmations: ConfirmationWorkflow,
        history: HistoryStore,
        gateway: CompletionGateway,
        knowledge: KnowledgeBase | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        primary_prefixes: list[str] | None = None,
        secondary_prefixes: list[str] | None = None,
    ):
        self.channel = channel
        self.sessions = sessions
        self.confirmations = confirmations
        self.history = history
        self.gateway = gateway
        self.knowledge = knowledge or KnowledgeBase()
        self.system_prompt = system_prompt

        triggers: list[tuple[str, ProviderId]] = []
        for prefix in primary_prefixes or ["cc", "小c"]:
            triggers.append((prefix.lower(), ProviderId.PRIMARY))
        for prefix in secondary_prefixes or ["yy", "小y"]:
            triggers.append((prefix.lower(), ProviderId.SECONDARY))
        # Longest first so "小c" is not shadowed by a shorter prefix.
        self._triggers = sorted(triggers, key=lambda t: len(t[0]), reverse=True)

        self.clear_memory = ClearMemoryCommand(channel, confirmations, history)
        self.clear_channel = ClearChannelCommand(channel, confirmations)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, message: InboundMessage) -> None:
        """Process one inbound message. Never raises."""
        try:
            await self._handle(message)
        except Exception:
            logger.exception(f"Error handling message {message.message_id} from {message.sender_id}")
            try:
                await self._reply_with_fallback(message, GENERIC_FAILURE)
            except Exception as e:
                logger.error(f"Failed to deliver error reply in channel {message.channel_id}: {e}")

    async def _handle(self, message: InboundMessage) -> None:
        if message.author_is_bot or message.sender_id == self.channel.bot_user_id:
            return

        if self.confirmations.offer(message.sender_id, message.channel_id, message.content):
            return

        reply_to_bot = await self._is_reply_to_bot(message)
        disposition = self.classify(message, reply_to_bot)
        logger.debug(
            f"Message {message.message_id}: action={disposition.action.value} "
            f"provider={disposition.provider} reply={message.is_reply} reply_to_bot={reply_to_bot}"
        )

        if disposition.action == Action.IGNORE:
            return

        session = self.sessions.touch(
            message.sender_id,
            message.channel_id,
            force_new=disposition.force_new,
            provider=disposition.provider or ProviderId.PRIMARY,
        )
        if disposition.action == Action.REFRESH:
            return

        await self._show_typing(message.channel_id)
        reply_id = await self._converse(message, disposition.query, session.provider)
        if reply_id:
            await self._annotate(message, reply_id, session)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def match_trigger(self, text: str) -> tuple[str, ProviderId] | None:
        """Return (prefix, provider) if ``text`` starts with a trigger prefix."""
        lowered = (text or "").lower()
        for prefix, provider in self._triggers:
            if lowered.startswith(prefix):
                return prefix, provider
        return None

    def classify(self, message: InboundMessage, reply_to_bot: bool, text: str | None = None) -> Disposition:
        content = message.content if text is None else text
        user_id, channel_id = message.session_key
        active = self.sessions.is_active(user_id, channel_id)

        trigger = self.match_trigger(content)
        if trigger:
            prefix, provider = trigger
            current = self.sessions.peek(user_id, channel_id)
            force_new = not active or current is None or current.provider != provider
            return Disposition(
                action=Action.RESPOND,
                query=content[len(prefix):].strip(),
                provider=provider,
                force_new=force_new,
            )

        if not active:
            return Disposition(Action.IGNORE)

        session = self.sessions.peek(user_id, channel_id)
        provider = session.provider if session else ProviderId.PRIMARY

        if not message.is_reply or reply_to_bot:
            return Disposition(Action.RESPOND, query=content, provider=provider)

        # Reply to someone else. Re-run once on normalised text in case a
        # trigger was hidden behind full-width or zero-width characters.
        if text is None:
            normalized = normalize_text(content)
            if normalized != content and self.match_trigger(normalized):
                return self.classify(message, reply_to_bot, text=normalized)
        return Disposition(Action.REFRESH, provider=provider)

    async def _is_reply_to_bot(self, message: InboundMessage) -> bool:
        if not message.reply_to_id:
            return False
        bot_id = self.channel.bot_user_id
        if not bot_id:
            return False
        try:
            author_id = await self.channel.fetch_author_id(message.channel_id, message.reply_to_id)
        except Exception as e:
            logger.error(f"Failed to fetch replied-to message {message.reply_to_id}: {e}")
            return False
        return author_id == bot_id

    # ------------------------------------------------------------------
    # Chat path
    # ------------------------------------------------------------------

    async def _converse(self, message: InboundMessage, query: str, provider: ProviderId) -> str | None:
        """Run a command or a completion for ``query``; return the reply's id."""
        user_id = message.sender_id

        # A request resolved but not yet released still swallows affirmatives.
        if self.confirmations.is_pending(user_id, message.channel_id) and is_affirmative(
            query, self.confirmations.tokens
        ):
            return None

        if is_clear_memory_command(query):
            logger.info(f"Clear-memory command from {user_id}")
            await self.clear_memory.run(message)
            return None

        if is_clear_channel_command(query):
            logger.info(f"Clear-channel command from {user_id}")
            await self.clear_channel.run(message)
            return None

        knowledge = self.knowledge.search(query)
        if knowledge:
            logger.info(f"Knowledge base match for query from {user_id}")

        binding = self.gateway.binding(provider)
        past = await self.history.replay(user_id)
        await self.history.append(user_id, "user", query, binding.id.value)

        request = binding.frame_request(self.system_prompt, past, query, knowledge)
        answer = await self.gateway.complete(provider, request)

        await self.history.append(user_id, "assistant", answer, binding.id.value)
        return await self._reply_with_fallback(message, answer)

    async def _reply_with_fallback(self, message: InboundMessage, content: str) -> str | None:
        try:
            return await self.channel.reply(message, content)
        except OutboundDeliveryError as e:
            logger.error(f"Reply failed, sending as new message: {e}")
            return await self.channel.send(message.channel_id, content)

    # ------------------------------------------------------------------
    # Side effects that must never break the chat path
    # ------------------------------------------------------------------

    async def _show_typing(self, channel_id: str) -> None:
        try:
            await self.channel.show_typing(channel_id)
        except Exception as e:
            logger.debug(f"Typing indicator error: {e}")

    async def _annotate(self, message: InboundMessage, reply_id: str, session: Session) -> None:
        markers = [self.gateway.binding(session.provider).marker]
        if session.is_new and not session.notified:
            self.sessions.mark_notified(session)
            markers.append(SESSION_EMOJI)
        for emoji in markers:
            if not emoji:
                continue
            try:
                await self.channel.react(message.channel_id, reply_id, emoji)
            except Exception as e:
                logger.error(f"Failed to add {emoji} marker: {e}")
