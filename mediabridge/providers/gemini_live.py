"""
Google Gemini Live API conversation link.

One ``GeminiLiveClient`` per call. ``connect()`` opens the bidirectional
WebSocket, sends the session setup and waits for ``setupComplete``; after
that a background reader normalizes every server message into a
``LiveResponse`` and hands it to ``receive()`` callers in FIFO order.

Lifecycle:
    idle -> connecting -> ready -> closed

Audio in both directions is base64 PCM16 little-endian at 24 kHz.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

import websockets
from prometheus_client import Counter, Gauge
from structlog import get_logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import GeminiLiveConfig
from .errors import LiveConnectionError, NotConnectedError
from .events import LiveResponse

logger = get_logger(__name__)

# Prebuilt voices accepted by speechConfig.voiceConfig
GEMINI_VOICES = ("Puck", "Charon", "Fenrir", "Kore", "Aoede", "Leda", "Orus", "Zephyr")

_CLOSE_CODE_MEANINGS = {
    1000: "Normal closure",
    1001: "Going away",
    1006: "Abnormal closure (no close frame)",
    1007: "Invalid frame payload data",
    1008: "Policy violation (likely auth/permission issue)",
    1009: "Message too big",
    1011: "Internal server error",
}

# Metrics
_GEMINI_ACTIVE_LINKS = Gauge(
    "mediabridge_gemini_active_links",
    "Number of Gemini Live links that completed setup and are not yet closed",
)
_GEMINI_AUDIO_SENT = Counter(
    "mediabridge_gemini_audio_bytes_sent",
    "Total PCM16 bytes sent to Gemini Live",
)
_GEMINI_AUDIO_RECEIVED = Counter(
    "mediabridge_gemini_audio_bytes_received",
    "Total PCM16 bytes received from Gemini Live",
)


class LinkState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


def resolve_voice(voice_name: Optional[str], default_voice: str) -> str:
    """Map a requested voice onto a known prebuilt voice, else the default."""
    if voice_name:
        for known in GEMINI_VOICES:
            if known.lower() == voice_name.strip().lower():
                return known
        logger.warning("Unknown Gemini voice requested, using default", requested=voice_name, default=default_voice)
    return default_voice


class GeminiLiveClient:
    """
    Bidirectional Gemini Live session for a single call.

    Sends are fire-and-forget and serialized; a transport failure while
    sending is logged and the frame is lost. ``receive()`` resolves to
    ``None`` once the link is closed, locally or by the server.
    """

    def __init__(
        self,
        config: GeminiLiveConfig,
        call_id: Optional[str] = None,
        connect=websockets.connect,
    ):
        self.config = config
        self._call_id = call_id
        self._connect = connect
        self._state = LinkState.IDLE
        self._websocket = None
        self._send_lock = asyncio.Lock()
        self._reader_task: Optional[asyncio.Task] = None
        self._buffer: Deque[LiveResponse] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._shutdown_done = False

    @property
    def state(self) -> LinkState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is LinkState.READY

    async def connect(
        self,
        system_instruction: str,
        voice_name: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """
        Open the link and complete the setup handshake.

        Raises:
            LiveConnectionError: if the link was already used, the API key is
                missing, or the handshake fails or times out. The link is
                closed in every failure case.
        """
        if self._state is not LinkState.IDLE:
            raise LiveConnectionError(f"Gemini Live link cannot connect from state '{self._state.value}'")

        if not self.config.api_key:
            await self._abort()
            raise LiveConnectionError("Gemini API key is not configured")

        self._state = LinkState.CONNECTING
        voice = resolve_voice(voice_name, self.config.default_voice)
        url = f"{self.config.endpoint}?key={self.config.api_key}"

        logger.info(
            "Connecting to Gemini Live",
            call_id=self._call_id,
            model=self.config.model,
            voice=voice,
            tool_count=len(tools or []),
        )

        try:
            self._websocket = await self._connect(
                url,
                max_size=self.config.max_message_bytes,
                open_timeout=self.config.setup_timeout_sec,
            )
            setup = self._build_setup_message(system_instruction, voice, tools)
            await self._websocket.send(json.dumps(setup))
            raw = await asyncio.wait_for(self._websocket.recv(), timeout=self.config.setup_timeout_sec)
        except asyncio.TimeoutError:
            await self._abort()
            raise LiveConnectionError(
                f"Gemini Live setup timed out after {self.config.setup_timeout_sec}s"
            ) from None
        except (OSError, WebSocketException) as e:
            await self._abort()
            raise LiveConnectionError(f"Gemini Live connection failed: {e}") from e

        try:
            ack = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            await self._abort()
            raise LiveConnectionError(f"Gemini Live sent an unreadable setup reply: {e}") from e

        if not isinstance(ack, dict) or "setupComplete" not in ack:
            await self._abort()
            detail = ack.get("error") if isinstance(ack, dict) else None
            raise LiveConnectionError(f"Gemini Live setup was not acknowledged: {detail or ack!r}")

        self._state = LinkState.READY
        _GEMINI_ACTIVE_LINKS.inc()
        self._reader_task = asyncio.create_task(
            self._receive_loop(),
            name=f"gemini-live-receive-{self._call_id}",
        )
        logger.info("Gemini Live setup complete", call_id=self._call_id)

    def _build_setup_message(
        self,
        system_instruction: str,
        voice: str,
        tools: Optional[List[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        model = self.config.model
        if not model.startswith("models/"):
            model = f"models/{model}"

        setup: Dict[str, Any] = {
            "model": model,
            "generation_config": {
                "responseModalities": list(self.config.response_modalities),
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": voice},
                    },
                },
            },
            "system_instruction": {"parts": [{"text": system_instruction}]},
        }
        if tools:
            setup["tools"] = [{"functionDeclarations": tools}]
        if self.config.enable_input_transcription:
            setup["inputAudioTranscription"] = {}
        if self.config.enable_output_transcription:
            setup["outputAudioTranscription"] = {}
        return {"setup": setup}

    def _ensure_ready(self) -> None:
        if self._state is not LinkState.READY:
            raise NotConnectedError(f"Gemini Live link is {self._state.value}, not ready")

    async def send_audio(self, pcm: bytes) -> None:
        """Stream PCM16 audio at the configured input rate."""
        self._ensure_ready()
        message = {
            "realtimeInput": {
                "mediaChunks": [
                    {
                        "mimeType": f"audio/pcm;rate={self.config.input_sample_rate_hz}",
                        "data": base64.b64encode(pcm).decode("ascii"),
                    }
                ]
            }
        }
        if await self._send_message(message):
            _GEMINI_AUDIO_SENT.inc(len(pcm))

    async def send_text(self, text: str) -> None:
        """Send a complete user turn as text."""
        self._ensure_ready()
        await self._send_message(
            {
                "clientContent": {
                    "turns": [{"role": "user", "parts": [{"text": text}]}],
                    "turnComplete": True,
                }
            }
        )

    async def send_tool_result(self, invocation_id: Optional[str], name: str, result: Dict[str, Any]) -> None:
        """Answer a function call."""
        self._ensure_ready()
        await self._send_message(
            {
                "toolResponse": {
                    "functionResponses": [
                        {"id": invocation_id, "name": name, "response": result},
                    ]
                }
            }
        )

    async def _send_message(self, message: Dict[str, Any]) -> bool:
        async with self._send_lock:
            websocket = self._websocket
            if websocket is None or self._state is not LinkState.READY:
                logger.debug("Gemini Live link closed before send", call_id=self._call_id)
                return False
            try:
                await websocket.send(json.dumps(message))
                return True
            except Exception as e:
                logger.error(
                    "Failed to send message to Gemini Live",
                    call_id=self._call_id,
                    error=str(e),
                )
                return False

    async def receive(self, timeout: Optional[float] = None) -> Optional[LiveResponse]:
        """
        Next server response, in arrival order.

        Returns ``None`` when the link is closed, or when ``timeout`` seconds
        pass without a response.
        """
        if self._state is LinkState.CLOSED:
            return None
        if self._buffer:
            return self._buffer.popleft()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            with contextlib.suppress(ValueError):
                self._waiters.remove(waiter)

    def _deliver(self, response: LiveResponse) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(response)
                return
        self._buffer.append(response)

    async def _receive_loop(self) -> None:
        websocket = self._websocket
        try:
            async for message in websocket:
                try:
                    data = json.loads(message)
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    logger.error(
                        "Failed to decode Gemini Live message",
                        call_id=self._call_id,
                        error=str(e),
                    )
                    continue
                if not isinstance(data, dict):
                    logger.warning("Ignoring non-object Gemini Live message", call_id=self._call_id)
                    continue

                response = LiveResponse.from_message(data, self.config.output_sample_rate_hz)
                if response.go_away:
                    logger.warning(
                        "Gemini Live server going away",
                        call_id=self._call_id,
                        time_left=(data.get("goAway") or {}).get("timeLeft"),
                    )
                received = sum(len(p.data) for p in response.audio_parts)
                if received:
                    _GEMINI_AUDIO_RECEIVED.inc(received)
                self._deliver(response)
        except ConnectionClosed as e:
            rcvd = getattr(e, "rcvd", None)
            code = getattr(rcvd, "code", None)
            logger.warning(
                "Gemini Live WebSocket closed",
                call_id=self._call_id,
                code=code,
                meaning=_CLOSE_CODE_MEANINGS.get(code, "Unknown"),
                reason=getattr(rcvd, "reason", None),
            )
        except Exception as e:
            logger.error(
                "Gemini Live receive loop error",
                call_id=self._call_id,
                error=str(e),
                exc_info=True,
            )
        finally:
            self._mark_closed()

    def _mark_closed(self) -> None:
        if self._state is LinkState.READY:
            _GEMINI_ACTIVE_LINKS.dec()
        self._state = LinkState.CLOSED
        self._buffer.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    async def _abort(self) -> None:
        self._mark_closed()
        await self._shutdown()

    async def _shutdown(self) -> None:
        if self._shutdown_done:
            return
        self._shutdown_done = True

        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        websocket = self._websocket
        self._websocket = None
        if websocket is not None:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug("Error closing Gemini Live WebSocket", call_id=self._call_id, error=str(e))

    async def close(self) -> None:
        """Close the link. Safe to call more than once."""
        was_open = self._state is not LinkState.CLOSED
        self._mark_closed()
        await self._shutdown()
        if was_open:
            logger.info("Gemini Live link closed", call_id=self._call_id)
