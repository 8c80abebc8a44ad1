"""
Normalized view of Gemini Live server messages.

The wire format uses camelCase JSON; ``LiveResponse.from_message`` folds the
fields the call handler cares about into plain dataclasses.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from structlog import get_logger

logger = get_logger(__name__)

_RATE_PATTERN = re.compile(r"rate=(\d+)")


@dataclass
class AudioPart:
    data: bytes  # PCM16 little-endian
    mime_type: str
    sample_rate: int


@dataclass
class TextPart:
    text: str


ResponsePart = Union[AudioPart, TextPart]


@dataclass
class ToolInvocation:
    id: Optional[str]
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LiveResponse:
    """One inbound Gemini Live message, after the handshake."""

    turn_complete: bool = False
    tool_calls: List[ToolInvocation] = field(default_factory=list)
    parts: List[ResponsePart] = field(default_factory=list)
    input_transcript: Optional[str] = None
    output_transcript: Optional[str] = None
    go_away: bool = False

    @property
    def audio_parts(self) -> List[AudioPart]:
        return [p for p in self.parts if isinstance(p, AudioPart)]

    @property
    def text_parts(self) -> List[TextPart]:
        return [p for p in self.parts if isinstance(p, TextPart)]

    @classmethod
    def from_message(cls, data: Dict[str, Any], default_sample_rate: int = 24000) -> "LiveResponse":
        response = cls()
        content = data.get("serverContent") or {}

        response.turn_complete = bool(content.get("turnComplete", False))

        model_turn = content.get("modelTurn") or {}
        for part in model_turn.get("parts") or []:
            inline_data = part.get("inlineData")
            if inline_data and inline_data.get("data"):
                audio = _decode_audio_part(inline_data, default_sample_rate)
                if audio is not None:
                    response.parts.append(audio)
            if part.get("text"):
                response.parts.append(TextPart(text=part["text"]))

        # Tool calls arrive top-level; some model revisions nest them in the turn
        tool_call = data.get("toolCall") or model_turn.get("toolCall") or {}
        for func_call in tool_call.get("functionCalls") or []:
            name = func_call.get("name")
            if not name:
                logger.warning("Ignoring Gemini function call without a name", function_call=func_call)
                continue
            response.tool_calls.append(
                ToolInvocation(id=func_call.get("id"), name=name, args=func_call.get("args") or {})
            )

        input_transcription = content.get("inputTranscription") or {}
        if input_transcription.get("text"):
            response.input_transcript = input_transcription["text"]
        output_transcription = content.get("outputTranscription") or {}
        if output_transcription.get("text"):
            response.output_transcript = output_transcription["text"]

        response.go_away = "goAway" in data
        return response


def _decode_audio_part(inline_data: Dict[str, Any], default_sample_rate: int) -> Optional[AudioPart]:
    mime_type = inline_data.get("mimeType", "")
    if mime_type and not mime_type.startswith("audio/pcm"):
        logger.debug("Skipping non-PCM inline data", mime_type=mime_type)
        return None
    try:
        pcm = base64.b64decode(inline_data["data"], validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("Dropping Gemini audio part with invalid base64", error=str(e))
        return None
    match = _RATE_PATTERN.search(mime_type)
    sample_rate = int(match.group(1)) if match else default_sample_rate
    return AudioPart(data=pcm, mime_type=mime_type or f"audio/pcm;rate={sample_rate}", sample_rate=sample_rate)
