"""Operator leg: the second human party of a dual-agent call."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from websockets.exceptions import ConnectionClosed

from ..core.websocket_channel import WebSocketChannel
from ..errors import LegTransportError, MalformedMessageError
from ..models.coordinator_events import CoordinatorEvent, LegRole
from ..models.media_frame import FrameDirection, MediaFrame
from .base import send_to_leg

if TYPE_CHECKING:
    from ..session.coordinator import CallCoordinator
    from ..session.operator_registry import OperatorRegistry

logger = logging.getLogger(__name__)

STATUS_WAITING = "waiting"
STATUS_CONNECTED = "connected"


def parse_operator_audio(raw_message: Any) -> Optional[str]:
    """Return the base64 audio of an operator frame, or None for non-audio frames."""
    try:
        data = json.loads(raw_message)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MalformedMessageError(f"Operator frame is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError("Operator frame must be a JSON object")
    if data.get("type") != "audio":
        logger.debug("operator_message_ignored type=%s", data.get("type"))
        return None
    audio = data.get("audio")
    if not isinstance(audio, str) or not audio:
        raise MalformedMessageError("audio frame without audio payload")
    return audio


class OperatorSink:
    leg = LegRole.OPERATOR

    def __init__(self, channel: WebSocketChannel) -> None:
        self.channel = channel

    async def send_audio(self, payload_b64: str) -> None:
        await send_to_leg(self.channel, {"type": "audio", "audio": payload_b64})

    async def clear(self) -> None:
        await send_to_leg(self.channel, {"type": "clear"})

    async def send_status(self, message: str) -> None:
        await send_to_leg(self.channel, {"type": "status", "message": message})


class OperatorConnection:
    """One connected operator.

    Registers itself as the waiting operator on connect. Once a call claims
    it, its audio is forwarded to that call's coordinator; when the call
    ends the coordinator detaches it and puts it back in the registry.
    """

    def __init__(self, operator_id: str, channel: WebSocketChannel, registry: "OperatorRegistry") -> None:
        self.operator_id = operator_id
        self.channel = channel
        self.registry = registry
        self.sink = OperatorSink(channel)
        self.closed = False
        self._coordinator: Optional["CallCoordinator"] = None

    @property
    def reachable(self) -> bool:
        return not self.closed and not self.channel.closed

    @property
    def coordinator(self) -> Optional["CallCoordinator"]:
        return self._coordinator

    def attach(self, coordinator: "CallCoordinator") -> None:
        self._coordinator = coordinator

    def detach(self, coordinator: "CallCoordinator") -> None:
        if self._coordinator is coordinator:
            self._coordinator = None

    async def send_status(self, message: str) -> None:
        await self.sink.send_status(message)

    async def run(self) -> None:
        reason = "disconnected"
        try:
            await self.registry.register(self)
            await self.send_status(STATUS_WAITING)
            async for raw_message in self.channel:
                try:
                    audio = parse_operator_audio(raw_message)
                except MalformedMessageError as exc:
                    logger.warning("operator_malformed_message operator=%s error=%s", self.operator_id, exc)
                    continue
                if audio is not None:
                    self._forward(audio)
        except (ConnectionClosed, LegTransportError) as exc:
            reason = "transport_error"
            logger.warning("operator_connection_lost operator=%s error=%s", self.operator_id, exc)
        finally:
            self.closed = True
            await self.registry.unregister(self)
            coordinator = self._coordinator
            if coordinator is not None:
                coordinator.publish_event(CoordinatorEvent.operator_closed(reason))
                self._coordinator = None
            logger.info("operator_disconnected operator=%s reason=%s", self.operator_id, reason)

    def _forward(self, audio_b64: str) -> None:
        coordinator = self._coordinator
        if coordinator is None:
            return
        frame = MediaFrame(
            stream_id=coordinator.stream_id or self.operator_id,
            direction=FrameDirection.INBOUND,
            payload_b64=audio_b64,
        )
        coordinator.publish_event(CoordinatorEvent.operator_audio(frame))


__all__ = [
    "OperatorConnection",
    "OperatorSink",
    "STATUS_CONNECTED",
    "STATUS_WAITING",
    "parse_operator_audio",
]
