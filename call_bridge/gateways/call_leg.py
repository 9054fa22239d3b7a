"""Telephony call leg: media-stream style JSON messages in and out."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from websockets.exceptions import ConnectionClosed

from ..core.websocket_channel import WebSocketChannel
from ..errors import MalformedMessageError
from ..models.coordinator_events import CoordinatorEvent, LegRole
from ..models.media_frame import FrameDirection, MediaFrame
from .base import send_to_leg

if TYPE_CHECKING:
    from ..session.coordinator import CallCoordinator

logger = logging.getLogger(__name__)


class CallLegMessageType(str, Enum):
    START = "start"
    MEDIA = "media"
    STOP = "stop"


@dataclass(frozen=True)
class CallLegMessage:
    type: CallLegMessageType
    stream_id: Optional[str] = None
    payload_b64: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)


class CallLegInputMapper:
    """Parses inbound call-leg frames.

    Returns ``None`` for events the bridge accepts but does not act on and
    raises ``MalformedMessageError`` for anything it cannot parse.
    """

    IGNORED_EVENTS = frozenset({"connected", "mark", "dtmf"})

    def parse(self, raw_message: Any) -> Optional[CallLegMessage]:
        try:
            data = json.loads(raw_message)
        except (json.JSONDecodeError, TypeError) as exc:
            raise MalformedMessageError(f"Call leg frame is not JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedMessageError("Call leg frame must be a JSON object")

        event = data.get("event")
        if event == CallLegMessageType.START.value:
            return self._parse_start(data)
        if event == CallLegMessageType.MEDIA.value:
            return self._parse_media(data)
        if event == CallLegMessageType.STOP.value:
            return CallLegMessage(CallLegMessageType.STOP, stream_id=data.get("streamSid"))
        if event in self.IGNORED_EVENTS:
            logger.debug("call_leg_event_ignored event=%s", event)
            return None
        raise MalformedMessageError(f"Unknown call leg event {event!r}")

    @staticmethod
    def _parse_start(data: Dict[str, Any]) -> CallLegMessage:
        start = data.get("start")
        if not isinstance(start, dict):
            raise MalformedMessageError("start event without a start block")
        stream_id = start.get("streamSid") or data.get("streamSid")
        if not stream_id:
            raise MalformedMessageError("start event without streamSid")
        parameters = start.get("customParameters") or {}
        if not isinstance(parameters, dict):
            logger.warning("call_leg_custom_parameters_ignored stream=%s type=%s", stream_id, type(parameters).__name__)
            parameters = {}
        return CallLegMessage(CallLegMessageType.START, stream_id=str(stream_id), parameters=parameters)

    @staticmethod
    def _parse_media(data: Dict[str, Any]) -> CallLegMessage:
        media = data.get("media")
        payload = media.get("payload") if isinstance(media, dict) else None
        if not isinstance(payload, str) or not payload:
            raise MalformedMessageError("media event without a payload")
        return CallLegMessage(CallLegMessageType.MEDIA, stream_id=data.get("streamSid"), payload_b64=payload)


class CallLegSink:
    """Writes agent audio and playback clears to the call leg."""

    leg = LegRole.CALLER

    def __init__(self, channel: WebSocketChannel) -> None:
        self.channel = channel
        self.stream_sid: Optional[str] = None

    def bind(self, stream_sid: str) -> None:
        self.stream_sid = stream_sid

    async def send_audio(self, payload_b64: str) -> None:
        if self.stream_sid is None:
            logger.debug("call_leg_audio_before_start dropped")
            return
        await send_to_leg(
            self.channel,
            {"event": "media", "streamSid": self.stream_sid, "media": {"payload": payload_b64}},
        )

    async def clear(self) -> None:
        if self.stream_sid is None:
            return
        await send_to_leg(self.channel, {"event": "clear", "streamSid": self.stream_sid})

    async def close(self) -> None:
        await self.channel.close()


class CallLegConnection:
    """Receive loop for one call leg. Everything it reads becomes a coordinator event."""

    def __init__(
        self,
        channel: WebSocketChannel,
        coordinator: "CallCoordinator",
        sink: CallLegSink,
        mapper: Optional[CallLegInputMapper] = None,
    ) -> None:
        self.channel = channel
        self.coordinator = coordinator
        self.sink = sink
        self.mapper = mapper or CallLegInputMapper()
        self.stream_sid: Optional[str] = None

    async def run(self) -> None:
        reason = "disconnected"
        try:
            async for raw_message in self.channel:
                try:
                    message = self.mapper.parse(raw_message)
                except MalformedMessageError as exc:
                    logger.warning("call_leg_malformed_message call=%s error=%s", self.coordinator.call_id, exc)
                    continue
                if message is not None:
                    self._dispatch(message)
        except ConnectionClosed as exc:
            reason = "transport_error"
            logger.warning("call_leg_connection_lost call=%s error=%s", self.coordinator.call_id, exc)
        finally:
            self.coordinator.publish_event(CoordinatorEvent.call_closed(reason))

    def _dispatch(self, message: CallLegMessage) -> None:
        if message.type == CallLegMessageType.START:
            self.stream_sid = message.stream_id
            self.sink.bind(message.stream_id)
            self.coordinator.publish_event(CoordinatorEvent.call_start(message.stream_id, message.parameters))
        elif message.type == CallLegMessageType.MEDIA:
            frame = MediaFrame(
                stream_id=self.stream_sid or message.stream_id or "",
                direction=FrameDirection.INBOUND,
                payload_b64=message.payload_b64,
            )
            self.coordinator.publish_event(CoordinatorEvent.call_media(frame))
        elif message.type == CallLegMessageType.STOP:
            self.coordinator.publish_event(CoordinatorEvent.call_stop())


__all__ = [
    "CallLegConnection",
    "CallLegInputMapper",
    "CallLegMessage",
    "CallLegMessageType",
    "CallLegSink",
]
