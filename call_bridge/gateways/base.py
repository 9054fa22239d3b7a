from __future__ import annotations

from typing import Any, Dict, Protocol

from websockets.exceptions import ConnectionClosed

from ..core.websocket_channel import WebSocketChannel
from ..errors import LegTransportError
from ..models.coordinator_events import LegRole


class AudioSink(Protocol):
    """Playback side of a human leg."""

    leg: LegRole

    async def send_audio(self, payload_b64: str) -> None: ...

    async def clear(self) -> None: ...


async def send_to_leg(channel: WebSocketChannel, payload: Dict[str, Any]) -> None:
    """Send one JSON message to a leg, surfacing a closed socket as ``LegTransportError``."""
    try:
        await channel.send_json(payload)
    except ConnectionClosed as exc:
        raise LegTransportError(f"Leg {channel.name} closed while sending") from exc


__all__ = ["AudioSink", "send_to_leg"]
