from .call_handler import CallHandler
from .models import CallSession, CallState, ConversationTurn, EndReason
from .session_store import DuplicateSessionError, SessionStore

__all__ = [
    "CallHandler",
    "CallSession",
    "CallState",
    "ConversationTurn",
    "DuplicateSessionError",
    "EndReason",
    "SessionStore",
]
