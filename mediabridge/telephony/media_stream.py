"""
Twilio Media Streams adapter.

Parses the JSON events Twilio sends over the ``<Stream>`` WebSocket and
writes the two events the bridge emits (``media`` and ``clear``). Audio
payloads are base64 μ-law 8 kHz mono.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Union
from urllib.parse import parse_qs, urlsplit

import structlog
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

logger = structlog.get_logger(__name__)

DEFAULT_PHONE_NUMBER = "unknown"


@dataclass
class StartEvent:
    stream_sid: str
    call_sid: Optional[str] = None
    custom_parameters: Dict[str, str] = field(default_factory=dict)


@dataclass
class MediaEvent:
    payload: bytes  # μ-law
    track: str = "inbound"


@dataclass
class StopEvent:
    stream_sid: Optional[str] = None


TelephonyEvent = Union[StartEvent, MediaEvent, StopEvent]


def parse_event(raw: Union[str, bytes]) -> Optional[TelephonyEvent]:
    """
    Parse one Media Streams frame.

    Returns ``None`` for frames the bridge ignores (``connected``, ``mark``,
    ``dtmf``, unknown events) and for malformed frames, which are logged.
    """
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Skipping malformed media stream frame", error=str(e))
        return None
    if not isinstance(message, dict):
        logger.warning("Skipping non-object media stream frame")
        return None

    event = message.get("event")
    if event == "start":
        start = message.get("start") or {}
        stream_sid = start.get("streamSid") or message.get("streamSid")
        if not stream_sid:
            logger.warning("Skipping start event without streamSid")
            return None
        params = start.get("customParameters") or {}
        return StartEvent(
            stream_sid=stream_sid,
            call_sid=start.get("callSid"),
            custom_parameters={str(k): str(v) for k, v in params.items() if v is not None},
        )

    if event == "media":
        media = message.get("media") or {}
        payload = media.get("payload")
        if not payload:
            return None
        try:
            audio = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning("Skipping media frame with invalid base64", error=str(e))
            return None
        return MediaEvent(payload=audio, track=media.get("track") or "inbound")

    if event == "stop":
        return StopEvent(stream_sid=message.get("streamSid"))

    if event != "connected":
        logger.debug("Ignoring media stream event", media_event=event)
    return None


def parse_query_params(path: Optional[str], default_voice: Optional[str] = None) -> Dict[str, Optional[str]]:
    """``phoneNumber`` and ``voiceId`` from the WebSocket request path."""
    query = parse_qs(urlsplit(path or "").query)
    phone_number = (query.get("phoneNumber") or [DEFAULT_PHONE_NUMBER])[0] or DEFAULT_PHONE_NUMBER
    voice_id = (query.get("voiceId") or [default_voice])[0] or default_voice
    return {"phone_number": phone_number, "voice_id": voice_id}


class MediaStreamConnection:
    """A Twilio Media Streams WebSocket as seen by the call handler."""

    def __init__(self, websocket):
        self._websocket = websocket

    @property
    def path(self) -> str:
        request = getattr(self._websocket, "request", None)
        return getattr(request, "path", "") or ""

    async def events(self) -> AsyncIterator[TelephonyEvent]:
        """Yield parsed events until the socket closes."""
        try:
            async for raw in self._websocket:
                event = parse_event(raw)
                if event is not None:
                    yield event
        except ConnectionClosed as e:
            logger.info("Media stream connection closed", code=getattr(e.rcvd, "code", None))

    def is_open(self) -> bool:
        return self._websocket.state is State.OPEN

    async def _send(self, message: Dict[str, Any]) -> None:
        if not self.is_open():
            logger.debug("Media stream closed, dropping outbound event", media_event=message.get("event"))
            return
        try:
            await self._websocket.send(json.dumps(message))
        except ConnectionClosed:
            logger.debug("Media stream closed while sending", media_event=message.get("event"))

    async def send_media(self, stream_sid: str, mulaw: bytes) -> None:
        await self._send(
            {
                "event": "media",
                "streamSid": stream_sid,
                "media": {"payload": base64.b64encode(mulaw).decode("ascii")},
            }
        )

    async def send_clear(self, stream_sid: str) -> None:
        """Tell Twilio to drop audio it has buffered but not yet played."""
        await self._send({"event": "clear", "streamSid": stream_sid})

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await self._websocket.close(code, reason)
