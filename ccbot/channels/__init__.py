"""Chat platform adapters."""

from ccbot.channels.base import BaseChannel, InboundMessage, PurgeResult

__all__ = ["BaseChannel", "InboundMessage", "PurgeResult"]
