"""
Shared fixtures and fakes for the media bridge tests.

The fakes stand in for the two network peers: the Twilio media stream
(``FakeTelephonyConnection``) and the Gemini Live link (``FakeLiveLink``).
"""

import asyncio
import struct

import pytest

from mediabridge.config import AppConfig, CallPolicyConfig, GeminiLiveConfig
from mediabridge.core.session_store import SessionStore
from mediabridge.providers import LiveConnectionError
from mediabridge.tools.registry import tool_registry


def pcm16(*samples):
    """Pack int samples as PCM16 little-endian."""
    return struct.pack(f"<{len(samples)}h", *samples)


def samples_of(pcm):
    return list(struct.unpack(f"<{len(pcm) // 2}h", pcm))


async def eventually(predicate, timeout=2.0, interval=0.005):
    """Wait until ``predicate()`` is truthy or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


class FakeTelephonyConnection:
    """In-memory replacement for MediaStreamConnection."""

    def __init__(self):
        self._queue = asyncio.Queue()
        self._open = True
        self.sent = []
        self.closed_with = None

    def push(self, event):
        self._queue.put_nowait(event)

    def hang_up(self):
        """The caller's side goes away without a stop event."""
        self._open = False
        self._queue.put_nowait(None)

    async def events(self):
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    def is_open(self):
        return self._open

    async def send_media(self, stream_sid, mulaw):
        self.sent.append({"event": "media", "streamSid": stream_sid, "payload": mulaw})

    async def send_clear(self, stream_sid):
        self.sent.append({"event": "clear", "streamSid": stream_sid})

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        self._open = False
        self._queue.put_nowait(None)

    def sent_events(self, name):
        return [m for m in self.sent if m["event"] == name]


class FakeLiveLink:
    """In-memory replacement for GeminiLiveClient."""

    def __init__(self, fail_connect=False):
        self.fail_connect = fail_connect
        self.connect_args = None
        self.ready = False
        self.close_calls = 0
        self.audio = []
        self.texts = []
        self.tool_results = []
        self._responses = asyncio.Queue()

    async def connect(self, system_instruction, voice_name=None, tools=None):
        self.connect_args = {
            "system_instruction": system_instruction,
            "voice_name": voice_name,
            "tools": tools,
        }
        if self.fail_connect:
            raise LiveConnectionError("Gemini Live setup was not acknowledged")
        self.ready = True

    def is_ready(self):
        return self.ready

    async def send_audio(self, pcm):
        self.audio.append(pcm)

    async def send_text(self, text):
        self.texts.append(text)

    async def send_tool_result(self, invocation_id, name, result):
        self.tool_results.append({"id": invocation_id, "name": name, "response": result})

    def push(self, response):
        self._responses.put_nowait(response)

    def drop(self):
        """The server closes the link mid-call."""
        self.ready = False

    async def receive(self, timeout=None):
        if not self.ready:
            return None
        try:
            return await asyncio.wait_for(self._responses.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def close(self):
        self.close_calls += 1
        self.ready = False


@pytest.fixture
def call_policy():
    # Short timers so timing behaviour runs in milliseconds
    return CallPolicyConfig(
        max_call_duration_sec=30.0,
        silence_timeout_sec=30.0,
        turn_limit_grace_sec=0.05,
        goodbye_grace_sec=0.05,
        end_call_tool_grace_sec=0.05,
        receive_poll_interval_sec=0.01,
    )


@pytest.fixture
def app_config(call_policy):
    return AppConfig(
        gemini=GeminiLiveConfig(api_key="test-key"),
        call_policy=call_policy,
    )


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def registry():
    tool_registry.clear()
    tool_registry.initialize_default_tools()
    yield tool_registry
    tool_registry.clear()


@pytest.fixture
def telephony():
    return FakeTelephonyConnection()


@pytest.fixture
def live_link():
    return FakeLiveLink()
