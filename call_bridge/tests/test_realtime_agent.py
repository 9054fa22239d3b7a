import json

import pytest

from call_bridge.agents.realtime import RealtimeAgentConnection, RealtimeInboundHandler, RealtimeOutboundHandler
import call_bridge.agents.realtime.connection as connection_module
from call_bridge.config import AgentConfig
from call_bridge.errors import AgentTransportError
from call_bridge.models import AgentEventType


@pytest.fixture
def inbound():
    return RealtimeInboundHandler("agent-test")


@pytest.mark.parametrize(
    "message_type, expected",
    [
        ("session.updated", AgentEventType.CONFIGURATION_ACKNOWLEDGED),
        ("input_audio_buffer.speech_started", AgentEventType.SPEECH_STARTED),
        ("input_audio_buffer.speech_stopped", AgentEventType.SPEECH_STOPPED),
        ("response.audio.done", AgentEventType.AUDIO_STREAM_ENDED),
        ("response.output_audio.done", AgentEventType.AUDIO_STREAM_ENDED),
        ("response.done", AgentEventType.RESPONSE_DONE),
    ],
)
def test_signal_messages_map_to_agent_events(inbound, message_type, expected):
    event = inbound.handle({"type": message_type})

    assert event.type == expected


def test_audio_delta_carries_payload_and_response_id(inbound):
    event = inbound.handle({"type": "response.audio.delta", "response_id": "resp-9", "delta": "AAEC"})

    assert event.type == AgentEventType.AUDIO_CHUNK
    assert event.payload_b64 == "AAEC"
    assert event.response_id == "resp-9"


def test_empty_audio_delta_is_skipped(inbound):
    assert inbound.handle({"type": "response.audio.delta", "delta": ""}) is None


def test_error_message_is_normalized(inbound):
    event = inbound.handle(
        {"type": "error", "error": {"type": "invalid_request_error", "code": "input_audio_buffer_commit_empty", "message": "empty"}}
    )

    assert event.type == AgentEventType.ERROR
    assert event.code == "input_audio_buffer_commit_empty"
    assert event.message == "empty"
    assert event.is_benign_error is True


def test_transcript_and_unknown_messages(inbound):
    transcript = inbound.handle({"type": "response.audio_transcript.done", "transcript": "hello"})

    assert transcript.type == AgentEventType.TRANSCRIPT
    assert transcript.text == "hello"
    assert inbound.handle({"type": "rate_limits.updated"}) is None


def test_decode_skips_non_json_frames(inbound, caplog):
    with caplog.at_level("WARNING"):
        assert inbound.decode("not json") is None
        assert inbound.decode("[1, 2]") is None

    assert "realtime_non_json_message" in caplog.text
    assert inbound.decode(json.dumps({"type": "session.updated"})).type == AgentEventType.CONFIGURATION_ACKNOWLEDGED


def test_outbound_serialization():
    assert RealtimeOutboundHandler.serialize_audio("AAEC") == {"type": "input_audio_buffer.append", "audio": "AAEC"}
    assert RealtimeOutboundHandler.serialize_cancel() == {"type": "response.cancel"}
    assert RealtimeOutboundHandler.serialize_session_update({"voice": "alloy"}) == {
        "type": "session.update",
        "session": {"voice": "alloy"},
    }


@pytest.fixture
def patched_connect(monkeypatch, fake_ws):
    calls = []

    async def _connect(url, **kwargs):
        calls.append((url, kwargs))
        return fake_ws

    monkeypatch.setattr(connection_module, "websocket_connect", _connect)
    return calls


@pytest.mark.asyncio
async def test_connect_uses_model_url_and_auth_headers(patched_connect):
    connection = RealtimeAgentConnection(AgentConfig(api_key="sk-test"), name="agent-test")

    await connection.connect()

    url, kwargs = patched_connect[0]
    assert url == "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview-2024-10-01"
    assert kwargs["additional_headers"] == {"Authorization": "Bearer sk-test", "OpenAI-Beta": "realtime=v1"}
    assert kwargs["ping_interval"] == 20
    await connection.close()


@pytest.mark.asyncio
async def test_connect_without_api_key_fails(patched_connect):
    connection = RealtimeAgentConnection(AgentConfig(api_key=None), name="agent-test")

    with pytest.raises(AgentTransportError):
        await connection.connect()
    assert patched_connect == []


@pytest.mark.asyncio
async def test_commands_are_sent_as_realtime_messages(patched_connect, fake_ws):
    connection = RealtimeAgentConnection(AgentConfig(api_key="sk-test"), name="agent-test")
    await connection.connect()

    await connection.send_configuration({"voice": "alloy"})
    await connection.append_audio("AAEC")
    await connection.cancel_response()

    assert [message["type"] for message in fake_ws.sent_json()] == [
        "session.update",
        "input_audio_buffer.append",
        "response.cancel",
    ]
    await connection.close()


@pytest.mark.asyncio
async def test_events_raise_when_remote_closes(patched_connect, fake_ws):
    connection = RealtimeAgentConnection(AgentConfig(api_key="sk-test"), name="agent-test")
    await connection.connect()
    fake_ws.feed({"type": "session.updated"})
    fake_ws.feed("garbage")
    fake_ws.feed({"type": "response.audio.delta", "delta": "AAEC"})
    fake_ws.feed_close()

    received = []
    with pytest.raises(AgentTransportError):
        async for event in connection.events():
            received.append(event.type)

    assert received == [AgentEventType.CONFIGURATION_ACKNOWLEDGED, AgentEventType.AUDIO_CHUNK]


@pytest.mark.asyncio
async def test_events_end_quietly_after_local_close(patched_connect, fake_ws):
    connection = RealtimeAgentConnection(AgentConfig(api_key="sk-test"), name="agent-test")
    await connection.connect()
    await connection.close()

    received = [event async for event in connection.events()]

    assert received == []
    assert fake_ws.closed is True
