"""Message routing, confirmations and admin commands."""

from ccbot.agent.confirmation import ConfirmationOutcome, ConfirmationWorkflow
from ccbot.agent.knowledge import KnowledgeBase
from ccbot.agent.router import MessageRouter

__all__ = ["ConfirmationOutcome", "ConfirmationWorkflow", "KnowledgeBase", "MessageRouter"]
