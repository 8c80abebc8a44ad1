"""
Unit tests for the Twilio Media Streams adapter.
"""

import base64
import json

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close
from websockets.protocol import State

from mediabridge.telephony import (
    MediaEvent,
    MediaStreamConnection,
    StartEvent,
    StopEvent,
    parse_event,
    parse_query_params,
)


class FakeServerSocket:
    def __init__(self, frames=(), path="/ws", fail_with=None):
        self._frames = list(frames)
        self._fail_with = fail_with
        self.state = State.OPEN
        self.sent = []
        self.closed_with = None
        self.request = type("Request", (), {"path": path})()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._frames:
            return self._frames.pop(0)
        if self._fail_with is not None:
            raise self._fail_with
        raise StopAsyncIteration

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        self.state = State.CLOSED


class TestParseEvent:
    def test_start(self):
        event = parse_event(json.dumps({
            "event": "start",
            "streamSid": "MZ1",
            "start": {
                "streamSid": "MZ1",
                "callSid": "CA1",
                "customParameters": {"phoneNumber": "+15551234", "voiceId": "Kore"},
            },
        }))
        assert event == StartEvent(
            stream_sid="MZ1",
            call_sid="CA1",
            custom_parameters={"phoneNumber": "+15551234", "voiceId": "Kore"},
        )

    def test_start_without_stream_sid_ignored(self):
        assert parse_event(json.dumps({"event": "start", "start": {}})) is None

    def test_media(self):
        payload = base64.b64encode(b"\xff\x00").decode()
        event = parse_event(json.dumps({"event": "media", "media": {"track": "inbound", "payload": payload}}))
        assert event == MediaEvent(payload=b"\xff\x00", track="inbound")

    def test_media_track_defaults_to_inbound(self):
        event = parse_event(json.dumps({"event": "media", "media": {"payload": "/w=="}}))
        assert event.track == "inbound"

    def test_media_invalid_base64_skipped(self):
        assert parse_event(json.dumps({"event": "media", "media": {"payload": "@@"}})) is None

    def test_stop(self):
        assert parse_event(json.dumps({"event": "stop", "streamSid": "MZ1"})) == StopEvent(stream_sid="MZ1")

    @pytest.mark.parametrize("raw", [
        json.dumps({"event": "connected", "protocol": "Call"}),
        json.dumps({"event": "mark", "mark": {"name": "x"}}),
        json.dumps(["not", "an", "object"]),
        "{broken json",
    ])
    def test_ignored_frames(self, raw):
        assert parse_event(raw) is None


class TestQueryParams:
    def test_values_from_query(self):
        params = parse_query_params("/ws?phoneNumber=%2B15551234&voiceId=Kore", default_voice="Puck")
        assert params == {"phone_number": "+15551234", "voice_id": "Kore"}

    def test_defaults(self):
        assert parse_query_params("/ws", default_voice="Puck") == {"phone_number": "unknown", "voice_id": "Puck"}

    def test_empty_values_fall_back(self):
        params = parse_query_params("/ws?phoneNumber=&voiceId=", default_voice="Puck")
        assert params == {"phone_number": "unknown", "voice_id": "Puck"}


class TestMediaStreamConnection:
    @pytest.mark.asyncio
    async def test_events_skip_ignored_frames(self):
        socket = FakeServerSocket([
            json.dumps({"event": "connected"}),
            "garbage",
            json.dumps({"event": "stop", "streamSid": "MZ1"}),
        ])
        events = [e async for e in MediaStreamConnection(socket).events()]
        assert events == [StopEvent(stream_sid="MZ1")]

    @pytest.mark.asyncio
    async def test_events_end_on_abnormal_close(self):
        error = ConnectionClosedError(Close(1006, ""), None)
        socket = FakeServerSocket([json.dumps({"event": "stop"})], fail_with=error)
        events = [e async for e in MediaStreamConnection(socket).events()]
        assert events == [StopEvent()]

    @pytest.mark.asyncio
    async def test_send_media_and_clear(self):
        socket = FakeServerSocket()
        connection = MediaStreamConnection(socket)

        await connection.send_media("MZ1", b"\xff\x7f")
        await connection.send_clear("MZ1")

        assert socket.sent == [
            {"event": "media", "streamSid": "MZ1", "media": {"payload": base64.b64encode(b"\xff\x7f").decode()}},
            {"event": "clear", "streamSid": "MZ1"},
        ]

    @pytest.mark.asyncio
    async def test_send_after_close_is_dropped(self):
        socket = FakeServerSocket()
        connection = MediaStreamConnection(socket)
        await connection.close(1000, "Call ended")

        await connection.send_clear("MZ1")

        assert not connection.is_open()
        assert socket.sent == []
        assert socket.closed_with == (1000, "Call ended")

    def test_path(self):
        assert MediaStreamConnection(FakeServerSocket(path="/ws?phoneNumber=1")).path == "/ws?phoneNumber=1"
