"""WebSocket wrapper shared by the call leg, operator leg and agent connections."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional, Protocol

from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .wire_log_sink import WireLogSink

logger = logging.getLogger(__name__)


class RawWebSocket(Protocol):
    """Subset of a websockets connection the bridge relies on."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> Any: ...

    async def close(self) -> None: ...


class WebSocketChannel:
    """Adds JSON helpers, close tracking and optional wire logging to a WebSocket.

    Iterating the channel yields raw text frames and stops cleanly when the
    peer closes the connection normally. Abnormal closes propagate as
    ``websockets.exceptions.ConnectionClosedError`` so receive loops can
    treat them as transport errors.
    """

    def __init__(
        self,
        websocket: RawWebSocket,
        name: str,
        debug_wire: bool = False,
        log_sink: Optional[WireLogSink] = None,
    ) -> None:
        self.websocket = websocket
        self.name = name
        self.debug_wire = debug_wire
        self.log_sink = log_sink
        self._closed = False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self.recv()
        except ConnectionClosed as exc:
            self._closed = True
            if not isinstance(exc, ConnectionClosedOK):
                raise
            raise StopAsyncIteration from None

    async def send(self, message: str) -> None:
        self._record("outbound", message)
        try:
            await self.websocket.send(message)
        except ConnectionClosed:
            self._closed = True
            raise

    async def send_json(self, payload: Mapping[str, Any]) -> None:
        await self.send(json.dumps(payload))

    async def recv(self) -> Any:
        message = await self.websocket.recv()
        self._record("inbound", message)
        return message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.websocket.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _record(self, direction: str, message: Any) -> None:
        if not self.debug_wire:
            return

        logger.debug("WS[%s] %s: %s", self.name, direction, message)

        if not self.log_sink:
            return

        self.log_sink.append_message(
            {"direction": direction, "message": self._normalize_message(message), "name": self.name}
        )

    @staticmethod
    def _normalize_message(message: Any) -> Any:
        if isinstance(message, bytes):
            return {"binary_bytes": len(message)}
        if isinstance(message, str):
            try:
                return json.loads(message)
            except json.JSONDecodeError:
                return message
        return message


__all__ = ["RawWebSocket", "WebSocketChannel"]
