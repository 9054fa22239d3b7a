"""Decode realtime agent messages into normalized ``AgentEvent`` objects."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

from ...models.agent_events import BENIGN_ERROR_CODES, AgentEvent, AgentEventType

logger = logging.getLogger(__name__)


class RealtimeMessageHandler(Protocol):
    """Protocol for per-type realtime message handlers."""

    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        ...


def extract_response_id(message: Dict[str, Any]) -> Optional[str]:
    response_meta = message.get("response") if isinstance(message.get("response"), dict) else {}
    response_id = message.get("response_id") or response_meta.get("id")
    return str(response_id) if response_id is not None else None


class SignalHandler:
    """Map a message type that carries no payload onto a fixed event type."""

    def __init__(self, event_type: AgentEventType):
        self.event_type = event_type

    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        return AgentEvent(self.event_type, response_id=extract_response_id(message))


class AudioDeltaHandler:
    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        audio_b64 = message.get("delta") or message.get("audio")
        if not audio_b64:
            logger.debug("realtime_audio_delta_empty message=%s", message)
            return None
        return AgentEvent.audio_chunk(str(audio_b64), response_id=extract_response_id(message))


class TranscriptDoneHandler:
    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        text = message.get("transcript") or message.get("text")
        if not text:
            return None
        return AgentEvent(AgentEventType.TRANSCRIPT, text=str(text), response_id=extract_response_id(message))


class ErrorHandler:
    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        error = message.get("error") if isinstance(message.get("error"), dict) else {}
        code = error.get("code") or error.get("type")
        text = error.get("message") or message.get("message")
        if code in BENIGN_ERROR_CODES:
            logger.debug("realtime_benign_error code=%s message=%s", code, text)
        else:
            logger.warning("realtime_error code=%s message=%s", code, text)
        return AgentEvent.error(code=str(code) if code else None, message=str(text) if text else None)


class LoggingOnlyHandler:
    """Handler for messages the bridge does not act on."""

    def __init__(self, name: str):
        self.name = name

    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        logger.debug("realtime_message_ignored handler=%s type=%s", self.name, message.get("type"))
        return None


class RealtimeInboundHandler:
    """Dispatch realtime messages to dedicated handlers by message type."""

    def __init__(self, connection_name: str):
        self.connection_name = connection_name
        audio_delta = AudioDeltaHandler()
        audio_done = SignalHandler(AgentEventType.AUDIO_STREAM_ENDED)
        self._handlers: Dict[str, RealtimeMessageHandler] = {
            "session.updated": SignalHandler(AgentEventType.CONFIGURATION_ACKNOWLEDGED),
            "input_audio_buffer.speech_started": SignalHandler(AgentEventType.SPEECH_STARTED),
            "input_audio_buffer.speech_stopped": SignalHandler(AgentEventType.SPEECH_STOPPED),
            "response.audio.delta": audio_delta,
            "response.output_audio.delta": audio_delta,
            "response.audio.done": audio_done,
            "response.output_audio.done": audio_done,
            "response.audio_transcript.done": TranscriptDoneHandler(),
            "response.output_audio_transcript.done": TranscriptDoneHandler(),
            "error": ErrorHandler(),
            "session.created": LoggingOnlyHandler("session.created"),
            "response.created": LoggingOnlyHandler("response.created"),
            "response.done": SignalHandler(AgentEventType.RESPONSE_DONE),
            "input_audio_buffer.committed": LoggingOnlyHandler("input_audio_buffer.committed"),
            "conversation.item.created": LoggingOnlyHandler("conversation.item.created"),
        }
        self._default_handler: RealtimeMessageHandler = LoggingOnlyHandler("unknown")

    def handle(self, message: Dict[str, Any]) -> Optional[AgentEvent]:
        message_type = message.get("type") or ""
        handler = self._handlers.get(message_type, self._default_handler)
        return handler.handle(message)

    def decode(self, raw_message: Any) -> Optional[AgentEvent]:
        """Parse one raw frame. Malformed frames are logged and skipped."""
        try:
            data = json.loads(raw_message)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("realtime_non_json_message connection=%s error=%s", self.connection_name, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("realtime_unexpected_message connection=%s type=%s", self.connection_name, type(data).__name__)
            return None
        return self.handle(data)


__all__ = ["RealtimeInboundHandler", "extract_response_id"]
