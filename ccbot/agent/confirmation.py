"""Two-phase confirmation for irreversible actions.

A destructive command first ``propose``s itself for a (user, channel) key.
Only one request per key may be outstanding; a second proposal is rejected.
The request resolves when the same user sends an affirmative reply in the
same channel (fed in through ``offer``), or times out. The key is released
exactly once whatever the outcome.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from ccbot.channels.base import BaseChannel, InboundMessage

DEFAULT_CONFIRM_TIMEOUT = 30.0

AFFIRMATIVE_TOKENS: tuple[str, ...] = ("确定", "确认", "是", "好的", "yes", "confirm")

ALREADY_PENDING = "已经有一个操作正在等待您的确认，请先回复「确定」或等待其超时。"


class ConfirmationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"  # another request already pending for the key


def is_affirmative(text: str, tokens: tuple[str, ...] = AFFIRMATIVE_TOKENS) -> bool:
    lowered = (text or "").lower()
    return any(token.lower() in lowered for token in tokens)


@dataclass(eq=False)
class ConfirmationRequest:
    user_id: str
    channel_id: str
    action: str
    deadline: float
    reply: asyncio.Future = field(
        default_factory=lambda: asyncio.get_running_loop().create_future(), repr=False
    )

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.channel_id)

    @property
    def resolved(self) -> bool:
        return self.reply.done()


class ConfirmationWorkflow:
    """Propose → await affirmative reply → release."""

    def __init__(
        self,
        channel: BaseChannel,
        timeout: float = DEFAULT_CONFIRM_TIMEOUT,
        tokens: tuple[str, ...] = AFFIRMATIVE_TOKENS,
    ):
        self.channel = channel
        self.timeout = float(timeout)
        self.tokens = tokens
        self._pending: dict[tuple[str, str], ConfirmationRequest] = {}

    def is_pending(self, user_id: str, channel_id: str) -> bool:
        return (user_id, channel_id) in self._pending

    def propose(self, user_id: str, channel_id: str, action: str) -> ConfirmationRequest | None:
        """Register a request, or return None if one is already outstanding."""
        key = (user_id, channel_id)
        if key in self._pending:
            logger.info(f"Rejected {action!r} for {key}: confirmation already pending")
            return None
        request = ConfirmationRequest(
            user_id=user_id,
            channel_id=channel_id,
            action=action,
            deadline=time.monotonic() + self.timeout,
        )
        self._pending[key] = request
        return request

    def offer(self, user_id: str, channel_id: str, text: str) -> bool:
        """Feed an inbound message; True if it confirmed a pending request."""
        request = self._pending.get((user_id, channel_id))
        if request is None or request.resolved:
            return False
        if not is_affirmative(text, self.tokens):
            return False
        request.reply.set_result(text)
        logger.info(f"Confirmation received for {request.action!r} from {user_id}")
        return True

    async def await_confirmation(
        self, request: ConfirmationRequest, timeout: float | None = None
    ) -> ConfirmationOutcome:
        wait = self.timeout if timeout is None else float(timeout)
        try:
            await asyncio.wait_for(request.reply, timeout=wait)
        except asyncio.TimeoutError:
            return ConfirmationOutcome.TIMED_OUT
        return ConfirmationOutcome.CONFIRMED

    def release(self, request: ConfirmationRequest) -> None:
        """Clear the key's marker if it still belongs to ``request``."""
        if self._pending.get(request.key) is request:
            del self._pending[request.key]
        if not request.reply.done():
            request.reply.cancel()

    async def confirm(self, message: InboundMessage, action: str, prompt: str) -> ConfirmationOutcome:
        """Run the full protocol for ``message``'s sender and channel."""
        request = self.propose(message.sender_id, message.channel_id, action)
        if request is None:
            await self.channel.reply(message, ALREADY_PENDING)
            return ConfirmationOutcome.REJECTED
        try:
            await self.channel.reply(message, prompt)
            return await self.await_confirmation(request)
        finally:
            self.release(request)
