"""Session state and chat history."""

from ccbot.session.history import ChatMessage, HistoryStore
from ccbot.session.manager import Session, SessionManager

__all__ = ["ChatMessage", "HistoryStore", "Session", "SessionManager"]
