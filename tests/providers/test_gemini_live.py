"""
Unit tests for the Gemini Live link.

Covers the setup handshake, outbound message shapes, the FIFO receive inbox
and close semantics, using an in-memory WebSocket.
"""

import asyncio
import base64
import json

import pytest

from mediabridge.config import GeminiLiveConfig
from mediabridge.providers import (
    GeminiLiveClient,
    LinkState,
    LiveConnectionError,
    NotConnectedError,
    resolve_voice,
)

_CLOSE = object()


class FakeGeminiSocket:
    def __init__(self, setup_reply=None, ack=True):
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()
        if setup_reply is not None:
            self._incoming.put_nowait(json.dumps(setup_reply))
        elif ack:
            self._incoming.put_nowait(json.dumps({"setupComplete": {}}))

    def push(self, message):
        self._incoming.put_nowait(message if isinstance(message, (str, bytes)) else json.dumps(message))

    def remote_close(self):
        self._incoming.put_nowait(_CLOSE)

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def recv(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise ConnectionError("closed")
        return item

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item

    async def close(self):
        self.closed = True
        self._incoming.put_nowait(_CLOSE)


@pytest.fixture
def gemini_config():
    return GeminiLiveConfig(api_key="test-key", setup_timeout_sec=0.2)


def make_client(config, socket):
    calls = []

    async def fake_connect(url, **kwargs):
        calls.append((url, kwargs))
        return socket

    client = GeminiLiveClient(config, call_id="CA123", connect=fake_connect)
    return client, calls


def server_audio(pcm, turn_complete=False):
    return {
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": base64.b64encode(pcm).decode()}}
                ]
            },
            "turnComplete": turn_complete,
        }
    }


class TestHandshake:
    @pytest.mark.asyncio
    async def test_connect_sends_setup_and_becomes_ready(self, gemini_config):
        socket = FakeGeminiSocket()
        client, calls = make_client(gemini_config, socket)
        tools = [{"name": "end_call", "description": "End", "parameters": {"type": "object"}}]

        await client.connect("Be brief.", "Kore", tools)

        assert client.state is LinkState.READY
        assert client.is_ready()
        assert calls[0][0].endswith("BidiGenerateContent?key=test-key")
        setup = socket.sent[0]["setup"]
        assert setup["model"] == "models/gemini-2.0-flash-exp"
        assert setup["generation_config"]["responseModalities"] == ["AUDIO"]
        voice = setup["generation_config"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
        assert voice == {"voiceName": "Kore"}
        assert setup["system_instruction"] == {"parts": [{"text": "Be brief."}]}
        assert setup["tools"] == [{"functionDeclarations": tools}]
        assert "inputAudioTranscription" not in setup
        await client.close()

    @pytest.mark.asyncio
    async def test_setup_omits_tools_when_none(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("Be brief.", None, [])
        setup = socket.sent[0]["setup"]
        assert "tools" not in setup
        assert setup["generation_config"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Puck"
        await client.close()

    @pytest.mark.asyncio
    async def test_transcription_flags(self, gemini_config):
        config = gemini_config.model_copy(
            update={"enable_input_transcription": True, "enable_output_transcription": True}
        )
        socket = FakeGeminiSocket()
        client, _ = make_client(config, socket)
        await client.connect("x")
        setup = socket.sent[0]["setup"]
        assert setup["inputAudioTranscription"] == {}
        assert setup["outputAudioTranscription"] == {}
        await client.close()

    @pytest.mark.asyncio
    async def test_unexpected_reply_fails_and_closes(self, gemini_config):
        socket = FakeGeminiSocket(setup_reply={"error": {"message": "bad model"}})
        client, _ = make_client(gemini_config, socket)
        with pytest.raises(LiveConnectionError):
            await client.connect("x")
        assert client.state is LinkState.CLOSED
        assert socket.closed

    @pytest.mark.asyncio
    async def test_setup_timeout(self, gemini_config):
        socket = FakeGeminiSocket(ack=False)
        client, _ = make_client(gemini_config, socket)
        with pytest.raises(LiveConnectionError, match="timed out"):
            await client.connect("x")
        assert client.state is LinkState.CLOSED

    @pytest.mark.asyncio
    async def test_transport_failure(self, gemini_config):
        async def refuse(url, **kwargs):
            raise OSError("connection refused")

        client = GeminiLiveClient(gemini_config, connect=refuse)
        with pytest.raises(LiveConnectionError) as exc_info:
            await client.connect("x")
        assert isinstance(exc_info.value, ConnectionError)
        assert client.state is LinkState.CLOSED

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        socket = FakeGeminiSocket()
        client, calls = make_client(GeminiLiveConfig(api_key=None), socket)
        with pytest.raises(LiveConnectionError):
            await client.connect("x")
        assert calls == []
        assert client.state is LinkState.CLOSED

    @pytest.mark.asyncio
    async def test_connect_only_from_idle(self, gemini_config):
        client, _ = make_client(gemini_config, FakeGeminiSocket())
        await client.connect("x")
        with pytest.raises(LiveConnectionError):
            await client.connect("x")
        await client.close()


class TestSending:
    @pytest.mark.asyncio
    async def test_sends_require_ready(self, gemini_config):
        client, _ = make_client(gemini_config, FakeGeminiSocket())
        with pytest.raises(NotConnectedError):
            await client.send_audio(b"\x00\x00")
        with pytest.raises(NotConnectedError):
            await client.send_text("hi")
        with pytest.raises(NotConnectedError):
            await client.send_tool_result("1", "end_call", {})

    @pytest.mark.asyncio
    async def test_message_shapes(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("x")

        await client.send_audio(b"\x01\x00\x02\x00")
        await client.send_text("Hello there")
        await client.send_tool_result("call-1", "end_call", {"status": "success"})

        audio, text, tool = socket.sent[1:]
        chunk = audio["realtimeInput"]["mediaChunks"][0]
        assert chunk["mimeType"] == "audio/pcm;rate=24000"
        assert base64.b64decode(chunk["data"]) == b"\x01\x00\x02\x00"
        assert text == {
            "clientContent": {
                "turns": [{"role": "user", "parts": [{"text": "Hello there"}]}],
                "turnComplete": True,
            }
        }
        assert tool == {
            "toolResponse": {
                "functionResponses": [{"id": "call-1", "name": "end_call", "response": {"status": "success"}}]
            }
        }
        await client.close()

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self, gemini_config):
        client, _ = make_client(gemini_config, FakeGeminiSocket())
        await client.connect("x")
        await client.close()
        with pytest.raises(NotConnectedError):
            await client.send_text("hi")


class TestReceive:
    @pytest.mark.asyncio
    async def test_buffered_responses_in_order(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("x")

        socket.push(server_audio(b"\x01\x00"))
        socket.push({"serverContent": {"turnComplete": True}})

        first = await client.receive(timeout=1)
        second = await client.receive(timeout=1)
        assert first.audio_parts[0].data == b"\x01\x00"
        assert first.audio_parts[0].sample_rate == 24000
        assert second.turn_complete
        await client.close()

    @pytest.mark.asyncio
    async def test_waiters_served_in_registration_order(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("x")

        first = asyncio.create_task(client.receive())
        await asyncio.sleep(0)
        second = asyncio.create_task(client.receive())
        await asyncio.sleep(0)

        socket.push({"serverContent": {"modelTurn": {"parts": [{"text": "one"}]}}})
        socket.push({"serverContent": {"modelTurn": {"parts": [{"text": "two"}]}}})

        assert (await first).text_parts[0].text == "one"
        assert (await second).text_parts[0].text == "two"
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_json_is_skipped(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("x")

        socket.push("{not json")
        socket.push({"serverContent": {"turnComplete": True}})

        response = await client.receive(timeout=1)
        assert response.turn_complete
        assert client.is_ready()
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, gemini_config):
        client, _ = make_client(gemini_config, FakeGeminiSocket())
        await client.connect("x")
        assert await client.receive(timeout=0.01) is None
        assert client.is_ready()
        await client.close()

    @pytest.mark.asyncio
    async def test_close_resolves_pending_receives(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("x")

        pending = [asyncio.create_task(client.receive()) for _ in range(3)]
        await asyncio.sleep(0)
        await client.close()

        assert await asyncio.gather(*pending) == [None, None, None]
        assert client.state is LinkState.CLOSED
        assert socket.closed
        assert await client.receive() is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, gemini_config):
        client, _ = make_client(gemini_config, FakeGeminiSocket())
        await client.connect("x")
        await client.close()
        await client.close()
        assert client.state is LinkState.CLOSED

    @pytest.mark.asyncio
    async def test_remote_close_closes_link(self, gemini_config):
        socket = FakeGeminiSocket()
        client, _ = make_client(gemini_config, socket)
        await client.connect("x")

        waiter = asyncio.create_task(client.receive())
        await asyncio.sleep(0)
        socket.remote_close()

        assert await asyncio.wait_for(waiter, timeout=1) is None
        assert client.state is LinkState.CLOSED
        assert not client.is_ready()
        await client.close()


class TestResolveVoice:
    def test_known_voice_case_insensitive(self):
        assert resolve_voice("charon", "Puck") == "Charon"

    def test_unknown_voice_falls_back(self):
        assert resolve_voice("Robot", "Puck") == "Puck"

    def test_missing_voice(self):
        assert resolve_voice(None, "Aoede") == "Aoede"
