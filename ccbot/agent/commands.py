"""Destructive admin commands gated behind confirmation.

Both commands are recognised by keyword pairs (an action word plus an object
word) anywhere in the query, in Chinese or English.
"""

from __future__ import annotations

import re

from loguru import logger

from ccbot.agent.confirmation import ConfirmationOutcome, ConfirmationWorkflow
from ccbot.channels.base import BaseChannel, InboundMessage
from ccbot.channels.errors import OutboundDeliveryError
from ccbot.session.history import HistoryStore

CLEAR_CHANNEL_VERBS = ("清除", "删除", "清理", "清空", "clear")
CLEAR_CHANNEL_OBJECTS = ("内容", "消息", "聊天", "频道", "channel", "message")

CLEAR_MEMORY_VERBS = ("清除", "删除", "清理", "重置", "忘记", "forget", "reset")
CLEAR_MEMORY_OBJECTS = ("记忆", "记录", "历史", "聊天记录", "memory", "history", "conversation")

CHANNEL_MENTION_RE = re.compile(r"<#(\d+)>")
CHANNEL_HASHTAG_RE = re.compile(r"#(\S+)")

CANCELLED = "操作已取消：没有收到确认回复。"


def _matches(content: str, verbs: tuple[str, ...], objects: tuple[str, ...]) -> bool:
    lowered = content.lower()
    return any(v in lowered for v in verbs) and any(o in lowered for o in objects)


def is_clear_memory_command(content: str) -> bool:
    return _matches(content, CLEAR_MEMORY_VERBS, CLEAR_MEMORY_OBJECTS)


def is_clear_channel_command(content: str) -> bool:
    return _matches(content, CLEAR_CHANNEL_VERBS, CLEAR_CHANNEL_OBJECTS)


class ClearMemoryCommand:
    """Erase the sender's chat history after confirmation."""

    action = "clear_memory"
    prompt = (
        "我理解您想要清除我们之间的聊天记忆。这将会删除我保存的所有对话历史，"
        "让我们可以重新开始对话。请在30秒内回复「确定」或「是」确认操作。"
    )

    def __init__(self, channel: BaseChannel, confirmations: ConfirmationWorkflow, history: HistoryStore):
        self.channel = channel
        self.confirmations = confirmations
        self.history = history

    async def run(self, message: InboundMessage) -> None:
        outcome = await self.confirmations.confirm(message, self.action, self.prompt)
        if outcome == ConfirmationOutcome.REJECTED:
            return
        if outcome == ConfirmationOutcome.TIMED_OUT:
            await self.channel.send(message.channel_id, CANCELLED)
            return

        if await self.history.clear(message.sender_id):
            logger.info(f"Cleared chat history for {message.sender_id}")
            await self.channel.reply(
                message,
                "已成功清除我们之间的所有聊天记忆。从现在开始，我们可以开始新的对话了。"
                "如果您有任何问题，随时都可以问我！",
            )
        else:
            await self.channel.reply(
                message,
                "抱歉，清除聊天记忆时出现了技术问题。请稍后再试一次。如果问题持续存在，请联系管理员。",
            )


class ClearChannelCommand:
    """Bulk-delete recent messages in a channel after confirmation."""

    action = "clear_channel"

    def __init__(self, channel: BaseChannel, confirmations: ConfirmationWorkflow):
        self.channel = channel
        self.confirmations = confirmations

    async def resolve_target(self, message: InboundMessage) -> str | None:
        """Channel named by ``<#id>`` or ``#name`` in the message, else its own channel."""
        mention = CHANNEL_MENTION_RE.search(message.content)
        if mention:
            return await self.channel.find_channel(message.guild_id, channel_id=mention.group(1))
        hashtag = CHANNEL_HASHTAG_RE.search(message.content)
        if hashtag:
            return await self.channel.find_channel(message.guild_id, name=hashtag.group(1))
        return message.channel_id

    async def run(self, message: InboundMessage) -> None:
        if not await self.channel.member_can_manage(message):
            await self.channel.reply(message, "很抱歉，您没有权限清除频道内容。需要拥有「管理消息」权限。")
            return

        target = await self.resolve_target(message)
        if target is None:
            await self.channel.reply(message, "找不到您指定的频道。")
            return
        if not await self.channel.is_text_channel(target):
            await self.channel.reply(message, "只能清除文本频道的内容。")
            return
        if not await self.channel.bot_can_manage(target):
            await self.channel.reply(message, f"我没有在 <#{target}> 中管理消息的权限。")
            return

        prompt = f"确定要清除 <#{target}> 频道的消息吗？请在30秒内回复「确定」或「是」确认操作。"
        outcome = await self.confirmations.confirm(message, self.action, prompt)
        if outcome == ConfirmationOutcome.REJECTED:
            return
        if outcome == ConfirmationOutcome.TIMED_OUT:
            await self.channel.send(message.channel_id, CANCELLED)
            return

        await self.channel.send(message.channel_id, f"开始清除 <#{target}> 的消息...")
        try:
            result = await self.channel.purge_recent(target)
        except OutboundDeliveryError as e:
            logger.error(f"Purge of channel {target} failed (retryable={e.retryable}): {e}")
            await self.channel.send(message.channel_id, "清除消息时发生错误，请稍后再试。")
            return
        if result.older_remaining:
            await self.channel.send(target, "无法删除两周以前的消息，操作已完成。")
        await self.channel.send(target, f"已成功清除 <#{target}> 中的 {result.deleted} 条消息。")
