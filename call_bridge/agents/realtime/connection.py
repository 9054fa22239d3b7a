"""WebSocket connection to a realtime speech-to-speech translation agent."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlencode

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ...config import AgentConfig
from ...core.websocket_channel import WebSocketChannel
from ...core.wire_log_sink import WireLogSink
from ...errors import AgentTransportError
from ...models.agent_events import AgentEvent
from ..base import AgentConnection
from .inbound_handler import RealtimeInboundHandler
from .outbound_handler import RealtimeOutboundHandler

logger = logging.getLogger(__name__)


class RealtimeAgentConnection(AgentConnection):
    def __init__(
        self,
        config: AgentConfig,
        *,
        name: str,
        log_wire: bool = False,
        log_wire_dir: str = "logs",
    ) -> None:
        self.config = config
        self.name = name
        self.log_wire = log_wire
        self.log_wire_dir = log_wire_dir
        self._channel: Optional[WebSocketChannel] = None
        self._outbound: Optional[RealtimeOutboundHandler] = None
        self._inbound = RealtimeInboundHandler(name)
        self._closed = False

    def _build_websocket_url(self) -> str:
        base_url = self.config.endpoint.rstrip("/")
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{urlencode({'model': self.config.model})}"

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    async def connect(self) -> None:
        if self._closed:
            raise AgentTransportError(f"Agent connection {self.name} is already closed")
        if self._channel is not None:
            logger.debug("agent_already_connected name=%s", self.name)
            return
        if not self.config.api_key:
            raise AgentTransportError("agent.api_key is not configured")

        ws_url = self._build_websocket_url()
        try:
            raw_ws = await websocket_connect(
                ws_url,
                additional_headers=self._build_headers(),
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout,
            )
        except (OSError, WebSocketException) as exc:
            raise AgentTransportError(f"Failed to connect to agent at {ws_url}: {exc}") from exc

        log_sink = WireLogSink(self.name, base_dir=self.log_wire_dir) if self.log_wire else None
        self._channel = WebSocketChannel(raw_ws, name=self.name, debug_wire=self.log_wire, log_sink=log_sink)
        self._outbound = RealtimeOutboundHandler(self._channel)
        logger.info("agent_connected name=%s url=%s", self.name, ws_url)

    def _require_outbound(self) -> RealtimeOutboundHandler:
        if self._outbound is None:
            raise AgentTransportError(f"Agent connection {self.name} is not connected")
        return self._outbound

    async def send_configuration(self, session_params: Dict[str, Any]) -> None:
        await self._require_outbound().send_session_update(session_params)
        logger.debug("agent_session_update_sent name=%s session=%s", self.name, session_params)

    async def append_audio(self, payload_b64: str) -> None:
        await self._require_outbound().append_audio(payload_b64)

    async def cancel_response(self) -> None:
        await self._require_outbound().cancel_response()

    async def events(self) -> AsyncIterator[AgentEvent]:
        if self._channel is None:
            raise AgentTransportError(f"Agent connection {self.name} is not connected")
        try:
            async for raw_message in self._channel:
                event = self._inbound.decode(raw_message)
                if event is not None:
                    yield event
        except ConnectionClosed as exc:
            if self._closed:
                return
            raise AgentTransportError(f"Agent connection {self.name} dropped: {exc}") from exc

        if not self._closed:
            raise AgentTransportError(f"Agent connection {self.name} closed by remote")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._channel is not None:
            try:
                await self._channel.close()
            except WebSocketException as exc:
                logger.warning("agent_close_failed name=%s error=%s", self.name, exc)
        logger.info("agent_connection_closed name=%s", self.name)


__all__ = ["RealtimeAgentConnection"]
