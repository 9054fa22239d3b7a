from __future__ import annotations

import logging
from typing import Any, Dict

from websockets.exceptions import ConnectionClosed

from ...core.websocket_channel import WebSocketChannel
from ...errors import AgentTransportError

logger = logging.getLogger(__name__)


class RealtimeOutboundHandler:
    """Serializes bridge commands into realtime protocol messages."""

    def __init__(self, channel: WebSocketChannel):
        self.channel = channel

    @staticmethod
    def serialize_session_update(session_params: Dict[str, Any]) -> Dict[str, Any]:
        return {"type": "session.update", "session": session_params}

    @staticmethod
    def serialize_audio(payload_b64: str) -> Dict[str, Any]:
        return {"type": "input_audio_buffer.append", "audio": payload_b64}

    @staticmethod
    def serialize_cancel() -> Dict[str, Any]:
        return {"type": "response.cancel"}

    async def send_session_update(self, session_params: Dict[str, Any]) -> None:
        await self._send(self.serialize_session_update(session_params))

    async def append_audio(self, payload_b64: str) -> None:
        await self._send(self.serialize_audio(payload_b64))

    async def cancel_response(self) -> None:
        await self._send(self.serialize_cancel())

    async def _send(self, payload: Dict[str, Any]) -> None:
        try:
            await self.channel.send_json(payload)
        except ConnectionClosed as exc:
            raise AgentTransportError(f"Agent connection {self.channel.name} closed while sending {payload['type']}") from exc


__all__ = ["RealtimeOutboundHandler"]
