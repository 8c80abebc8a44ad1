"""
Registry of the calls currently being bridged.

Owned by the server and shared by every ``CallHandler``. A call id can be
registered by at most one active session at a time.
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog

from .models import CallSession

logger = structlog.get_logger(__name__)


class DuplicateSessionError(Exception):
    """A session with the same call id is already active."""


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}
        self._lock = asyncio.Lock()

    async def register(self, session: CallSession) -> None:
        async with self._lock:
            if session.call_id in self._sessions:
                raise DuplicateSessionError(f"Call {session.call_id} already has an active session")
            self._sessions[session.call_id] = session
        logger.debug("Session registered", call_id=session.call_id, active_calls=len(self._sessions))

    async def remove(self, call_id: str) -> Optional[CallSession]:
        async with self._lock:
            session = self._sessions.pop(call_id, None)
        if session is not None:
            logger.debug("Session removed", call_id=call_id, active_calls=len(self._sessions))
        return session

    async def get_by_call_id(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    def active_sessions(self) -> List[CallSession]:
        return list(self._sessions.values())

    def get_session_stats(self) -> Dict[str, Any]:
        sessions = self.active_sessions()
        return {
            "active_calls": len(sessions),
            "ai_turns": sum(s.ai_turn_count for s in sessions),
            "longest_call_sec": round(max((s.duration_sec for s in sessions), default=0.0), 1),
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions
