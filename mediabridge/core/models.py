"""
Core data models for the media bridge.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import time


class CallState(str, Enum):
    STARTING = "starting"  # WebSocket open, no start event handled yet
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"


class EndReason(str, Enum):
    SILENCE_TIMEOUT = "silence_timeout"
    MAX_DURATION = "max_duration"
    STREAM_STOPPED = "stream_stopped"
    TURN_LIMIT = "turn_limit"
    AI_REQUESTED = "ai_requested"
    GOODBYE_PHRASE = "goodbye_phrase"
    ERROR = "error"
    DISCONNECTED = "disconnected"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ConversationTurn:
    role: str  # "user" | "model"
    text: str
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass
class CallSession:
    """State of one bridged call."""
    # Identifiers
    call_id: str
    stream_id: str
    phone_number: str = "unknown"
    voice_id: Optional[str] = None

    # Conversation
    conversation_log: List[ConversationTurn] = field(default_factory=list)
    ai_turn_count: int = 0

    # Lifecycle (unix seconds)
    start_time: float = field(default_factory=time.time)
    last_activity_time: float = field(default_factory=time.time)
    active: bool = True
    state: CallState = CallState.ACTIVE
    end_reason: Optional[EndReason] = None

    def add_turn(self, role: str, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, text=text)
        self.conversation_log.append(turn)
        return turn

    def touch(self) -> None:
        self.last_activity_time = time.time()

    @property
    def duration_sec(self) -> float:
        return max(0.0, time.time() - self.start_time)
