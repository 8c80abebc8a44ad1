"""
Per-call orchestration between a Twilio media stream and Gemini Live.

One ``CallHandler`` owns one telephony WebSocket. It opens a Gemini Live link
when the stream starts, transcodes audio in both directions, runs tool calls,
and ends the call on silence, duration, turn-limit, goodbye, tool request,
stream stop, disconnect or error.

States:
    starting -> active -> ending -> ended
    starting -> ended               (setup failed)
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import asdict
from typing import Any, Callable, List, Optional

from prometheus_client import Counter, Gauge

from ..audio import (
    TELEPHONY_SAMPLE_RATE,
    compute_rms,
    mulaw_to_pcm16le,
    pcm16le_to_mulaw,
    resample_audio,
)
from ..config import AppConfig
from ..logging_config import get_logger, set_correlation_id
from ..providers import AudioPart, GeminiLiveClient, LiveResponse
from ..scripts import get_call_script
from ..telephony import MediaEvent, StartEvent, StopEvent
from ..tools import ToolExecutionContext, tool_registry
from ..tools.telephony import END_CALL_ACTION
from .models import CallSession, CallState, EndReason
from .session_store import SessionStore

logger = get_logger(__name__)

# Keys of a tool result that drive the handler and are not shown to the model
_INTERNAL_RESULT_KEYS = frozenset({"action"})

_ACTIVE_CALLS = Gauge(
    "mediabridge_active_calls",
    "Number of calls currently bridged",
)
_CALLS_ENDED = Counter(
    "mediabridge_calls_ended_total",
    "Calls ended, by reason",
    labelnames=("reason",),
)
_CALL_SETUP_FAILURES = Counter(
    "mediabridge_call_setup_failures_total",
    "Calls that failed before becoming active",
)
_BARGE_INS = Counter(
    "mediabridge_barge_in_total",
    "Inbound frames loud enough to interrupt AI playback",
)
_TOOL_CALLS = Counter(
    "mediabridge_tool_calls_total",
    "Tool invocations requested by the model",
    labelnames=("tool", "status"),
)


class CallHandler:
    """
    Bridge one telephony media stream to one Gemini Live link.

    ``link_factory(call_id)`` builds the link for the call; tests pass a fake.
    """

    def __init__(
        self,
        connection,
        session_store: SessionStore,
        config: AppConfig,
        link_factory: Optional[Callable[[str], Any]] = None,
        registry=None,
        phone_number: str = "unknown",
        voice_id: Optional[str] = None,
    ):
        self.connection = connection
        self.session_store = session_store
        self.config = config
        self.policy = config.call_policy
        self.registry = registry if registry is not None else tool_registry
        self._link_factory = link_factory or (
            lambda call_id: GeminiLiveClient(config.gemini, call_id=call_id)
        )
        self.phone_number = phone_number
        self.voice_id = voice_id

        self.state = CallState.STARTING
        self.session: Optional[CallSession] = None
        self.link = None
        self.stream_id: Optional[str] = None

        self._receive_task: Optional[asyncio.Task] = None
        self._silence_task: Optional[asyncio.Task] = None
        self._max_duration_task: Optional[asyncio.Task] = None
        self._delayed_end_task: Optional[asyncio.Task] = None
        self._delayed_end_deadline = 0.0
        self._ended = asyncio.Event()

        self._input_transcript: List[str] = []
        self._output_transcript: List[str] = []

    @property
    def call_id(self) -> Optional[str]:
        return self.session.call_id if self.session else None

    async def run(self) -> None:
        """Consume telephony events until the stream closes or the call ends."""
        try:
            async for event in self.connection.events():
                if self.state is CallState.ENDED:
                    break
                if isinstance(event, StartEvent):
                    await self.handle_start(event)
                elif isinstance(event, MediaEvent):
                    await self.handle_media(event)
                elif isinstance(event, StopEvent):
                    await self.handle_stop(event)
        finally:
            if self.state is CallState.ACTIVE:
                await self.end_call(EndReason.DISCONNECTED)
            elif self.state is CallState.ENDING:
                await self._ended.wait()

    # -- telephony events ---------------------------------------------------

    async def handle_start(self, event: StartEvent) -> None:
        if self.state is not CallState.STARTING:
            logger.warning(
                "Ignoring repeated start event",
                call_id=self.call_id,
                stream_sid=event.stream_sid,
            )
            return

        params = event.custom_parameters
        phone_number = params.get("phoneNumber") or self.phone_number
        voice_id = params.get("voiceId") or self.voice_id
        call_id = event.call_sid or event.stream_sid
        set_correlation_id(call_id)
        self.stream_id = event.stream_sid

        logger.info(
            "Media stream started",
            call_id=call_id,
            stream_sid=event.stream_sid,
            phone_number=phone_number,
            voice_id=voice_id,
        )

        script = get_call_script(self.config.script)
        session = CallSession(
            call_id=call_id,
            stream_id=event.stream_sid,
            phone_number=phone_number,
            voice_id=voice_id,
        )

        link = None
        try:
            link = self._link_factory(call_id)
            self.link = link
            await link.connect(
                script.system_instruction,
                voice_id,
                self.registry.to_gemini_schema(),
            )
            await self.session_store.register(session)
        except Exception as e:
            logger.error(
                "Call setup failed",
                call_id=call_id,
                error=str(e),
                exc_info=True,
            )
            _CALL_SETUP_FAILURES.inc()
            if link is not None:
                await link.close()
            self.state = CallState.ENDED
            self._ended.set()
            await self._close_telephony(1011, "Internal error")
            return

        self.session = session
        self.state = CallState.ACTIVE
        _ACTIVE_CALLS.inc()

        self._max_duration_task = asyncio.create_task(
            self._end_after(self.policy.max_call_duration_sec, EndReason.MAX_DURATION),
            name=f"max-duration-{call_id}",
        )
        self._arm_silence_timer()
        self._receive_task = asyncio.create_task(
            self._receive_loop(),
            name=f"gemini-receive-{call_id}",
        )

        try:
            await link.send_text(script.opening_message)
        except Exception as e:
            logger.error("Failed to send opening message", call_id=call_id, error=str(e))

    async def handle_media(self, event: MediaEvent) -> None:
        if self.state is not CallState.ACTIVE or event.track != "inbound":
            return

        self._arm_silence_timer()
        self.session.touch()

        try:
            pcm8k = mulaw_to_pcm16le(event.payload)

            rms = compute_rms(pcm8k)
            if rms > self.policy.barge_in_threshold:
                _BARGE_INS.inc()
                logger.debug("Caller speech detected, clearing playback", call_id=self.call_id, rms=round(rms))
                await self.connection.send_clear(self.stream_id)

            if not self.link.is_ready():
                return

            pcm_ai = resample_audio(pcm8k, TELEPHONY_SAMPLE_RATE, self.config.gemini.input_sample_rate_hz)
            await self.link.send_audio(pcm_ai)
        except Exception as e:
            logger.error("Error processing inbound media", call_id=self.call_id, error=str(e))

    async def handle_stop(self, event: StopEvent) -> None:
        logger.info("Media stream stopped", call_id=self.call_id, stream_sid=event.stream_sid)
        await self.end_call(EndReason.STREAM_STOPPED)

    # -- Gemini responses ---------------------------------------------------

    async def _receive_loop(self) -> None:
        session = self.session
        try:
            while session.active:
                response = await self.link.receive(timeout=self.policy.receive_poll_interval_sec)
                if response is None:
                    if session.active and not self.link.is_ready():
                        if self._end_pending():
                            # The scheduled end still owns the hang-up
                            logger.info("Gemini Live link closed while call is ending", call_id=session.call_id)
                            return
                        logger.warning("Gemini Live link closed during call", call_id=session.call_id)
                        await self.end_call(EndReason.ERROR)
                        return
                    continue
                try:
                    await self._handle_response(response)
                except Exception as e:
                    logger.error(
                        "Error handling Gemini response",
                        call_id=session.call_id,
                        error=str(e),
                        exc_info=True,
                    )
        except Exception as e:
            logger.error("Gemini receive loop failed", call_id=session.call_id, error=str(e), exc_info=True)
            await self.end_call(EndReason.ERROR)

    async def _handle_response(self, response: LiveResponse) -> None:
        session = self.session

        if response.input_transcript:
            self._input_transcript.append(response.input_transcript)
        if response.output_transcript:
            self._output_transcript.append(response.output_transcript)

        if response.turn_complete:
            self._flush_transcripts()
            session.ai_turn_count += 1
            logger.info("AI turn complete", call_id=session.call_id, ai_turns=session.ai_turn_count)
            if session.ai_turn_count >= self.policy.max_ai_turns:
                self._schedule_end(EndReason.TURN_LIMIT, self.policy.turn_limit_grace_sec)

        for invocation in response.tool_calls:
            await self._run_tool(invocation)

        for part in response.parts:
            if not session.active:
                break
            if isinstance(part, AudioPart):
                await self._play_audio(part.data, part.sample_rate)
            else:
                session.add_turn("model", part.text)
                logger.info("AI text", call_id=session.call_id, text=part.text[:200])
                self._check_goodbye(part.text)

    async def _run_tool(self, invocation) -> None:
        session = self.session
        logger.info(
            "Gemini tool call",
            call_id=session.call_id,
            function=invocation.name,
            tool_call_id=invocation.id,
        )
        context = ToolExecutionContext(
            call_id=session.call_id,
            session=session,
            config=self.config.model_dump(exclude={"gemini": {"api_key"}}),
        )
        result = await self.registry.invoke(invocation.name, invocation.args, context)
        _TOOL_CALLS.labels(tool=invocation.name, status=str(result.get("status", "unknown"))).inc()

        reply = {k: v for k, v in result.items() if k not in _INTERNAL_RESULT_KEYS}
        try:
            await self.link.send_tool_result(invocation.id, invocation.name, reply)
        except Exception as e:
            logger.error("Failed to return tool result", call_id=session.call_id, function=invocation.name, error=str(e))

        if result.get("action") == END_CALL_ACTION:
            logger.info("AI requested end of call", call_id=session.call_id, reason=result.get("reason"))
            self._schedule_end(EndReason.AI_REQUESTED, self.policy.end_call_tool_grace_sec)

    async def _play_audio(self, pcm: bytes, sample_rate: int) -> None:
        pcm8k = resample_audio(pcm, sample_rate, TELEPHONY_SAMPLE_RATE)
        await self.connection.send_media(self.stream_id, pcm16le_to_mulaw(pcm8k))

    def _flush_transcripts(self) -> None:
        session = self.session
        if self._input_transcript:
            text = "".join(self._input_transcript).strip()
            self._input_transcript.clear()
            if text:
                session.add_turn("user", text)
                logger.info("Caller said", call_id=session.call_id, text=text[:200])
        if self._output_transcript:
            text = "".join(self._output_transcript).strip()
            self._output_transcript.clear()
            if text:
                session.add_turn("model", text)
                logger.info("AI said", call_id=session.call_id, text=text[:200])
                self._check_goodbye(text)

    def _check_goodbye(self, text: str) -> None:
        lowered = text.lower()
        for phrase in self.policy.goodbye_phrases:
            if phrase in lowered:
                logger.info("AI said goodbye", call_id=self.call_id, phrase=phrase)
                self._schedule_end(EndReason.GOODBYE_PHRASE, self.policy.goodbye_grace_sec)
                return

    # -- timers -------------------------------------------------------------

    def _arm_silence_timer(self) -> None:
        if self._silence_task is not None:
            self._silence_task.cancel()
        self._silence_task = asyncio.create_task(
            self._end_after(self.policy.silence_timeout_sec, EndReason.SILENCE_TIMEOUT),
            name=f"silence-{self.call_id}",
        )

    def _end_pending(self) -> bool:
        return self._delayed_end_task is not None and not self._delayed_end_task.done()

    def _schedule_end(self, reason: EndReason, delay: float) -> None:
        """Schedule a delayed end. Of several pending ends the earliest deadline is kept."""
        if self.state is not CallState.ACTIVE:
            return
        deadline = asyncio.get_running_loop().time() + delay
        if self._end_pending():
            if self._delayed_end_deadline <= deadline:
                logger.debug("Earlier end already scheduled", call_id=self.call_id, reason=reason.value)
                return
            self._delayed_end_task.cancel()
        logger.info("Ending call shortly", call_id=self.call_id, reason=reason.value, delay_sec=delay)
        self._delayed_end_deadline = deadline
        self._delayed_end_task = asyncio.create_task(
            self._end_after(delay, reason),
            name=f"delayed-end-{self.call_id}",
        )

    async def _end_after(self, delay: float, reason: EndReason) -> None:
        await asyncio.sleep(delay)
        if reason is EndReason.SILENCE_TIMEOUT:
            logger.info("Silence timeout", call_id=self.call_id, timeout_sec=delay)
        elif reason is EndReason.MAX_DURATION:
            logger.info("Max call duration reached", call_id=self.call_id, limit_sec=delay)
        await self.end_call(reason)

    # -- termination --------------------------------------------------------

    async def end_call(self, reason: EndReason) -> None:
        """
        End the call. Only the first call has any effect.

        Timers and any pending delayed end are cancelled, the link and the
        telephony socket are closed, and the session leaves the store.
        """
        if self.state is not CallState.ACTIVE:
            return

        session = self.session
        self.state = CallState.ENDING
        session.active = False
        session.state = CallState.ENDING
        session.end_reason = reason

        try:
            await self._cancel_tasks(
                self._silence_task,
                self._max_duration_task,
                self._delayed_end_task,
                self._receive_task,
            )

            try:
                await self.link.close()
            except Exception as e:
                logger.warning("Error closing Gemini Live link", call_id=session.call_id, error=str(e))

            await self._close_telephony(1000, "Call ended")
            await self.session_store.remove(session.call_id)
        finally:
            self.state = CallState.ENDED
            session.state = CallState.ENDED
            _ACTIVE_CALLS.dec()
            _CALLS_ENDED.labels(reason=reason.value).inc()
            self._ended.set()

        logger.info(
            "Call ended",
            call_id=session.call_id,
            reason=reason.value,
            duration_sec=round(session.duration_sec, 1),
            ai_turns=session.ai_turn_count,
            conversation=[asdict(turn) for turn in session.conversation_log],
        )

    async def _cancel_tasks(self, *tasks: Optional[asyncio.Task]) -> None:
        current = asyncio.current_task()
        pending = [t for t in tasks if t is not None and t is not current and not t.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _close_telephony(self, code: int, reason: str) -> None:
        try:
            if self.connection.is_open():
                await self.connection.close(code, reason)
        except Exception as e:
            logger.warning("Error closing media stream", call_id=self.call_id, code=code, error=str(e))
