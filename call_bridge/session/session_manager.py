"""Session manager: entry point for accepted call-leg and operator WebSockets."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Dict, Optional

from ..config import Config
from ..core.websocket_channel import RawWebSocket, WebSocketChannel
from ..core.wire_log_sink import WireLogSink
from ..gateways.call_leg import CallLegConnection, CallLegSink
from ..gateways.operator_leg import OperatorConnection
from .coordinator import AgentConnectionFactory, CallCoordinator
from .operator_registry import OperatorRegistry

logger = logging.getLogger(__name__)


class SessionManager:
    """Tracks active calls and owns the operator registry.

    The hosting process awaits ``handle_call_leg`` or ``handle_operator_leg``
    for each accepted WebSocket; both return when that connection is done.
    """

    def __init__(
        self,
        config: Config,
        *,
        registry: Optional[OperatorRegistry] = None,
        agent_factory: Optional[AgentConnectionFactory] = None,
    ):
        self.config = config
        self.registry = registry or OperatorRegistry()
        self.agent_factory = agent_factory
        self.calls: Dict[str, CallCoordinator] = {}
        self.operators: Dict[str, OperatorConnection] = {}
        self._lock = asyncio.Lock()

    def _channel(self, websocket: RawWebSocket, name: str) -> WebSocketChannel:
        system = self.config.system
        log_sink = WireLogSink(name, base_dir=system.log_wire_dir) if system.log_wire else None
        return WebSocketChannel(websocket, name=name, debug_wire=system.log_wire, log_sink=log_sink)

    async def create_call(self, websocket: RawWebSocket) -> CallLegConnection:
        """Build the coordinator and receive loop for a new call leg."""
        async with self._lock:
            call_id = str(uuid.uuid4())
            channel = self._channel(websocket, f"call-{call_id}")
            sink = CallLegSink(channel)
            coordinator = CallCoordinator(
                call_id,
                self.config,
                sink,
                self.registry,
                agent_factory=self.agent_factory,
            )
            self.calls[call_id] = coordinator
        await coordinator.start()
        logger.info("call_created call=%s active=%s", call_id, len(self.calls))
        return CallLegConnection(channel, coordinator, sink)

    async def handle_call_leg(self, websocket: RawWebSocket) -> None:
        connection = await self.create_call(websocket)
        coordinator = connection.coordinator
        try:
            await connection.run()
            await coordinator.wait_closed()
        finally:
            await self.remove_call(coordinator.call_id)

    async def remove_call(self, call_id: str) -> None:
        async with self._lock:
            coordinator = self.calls.pop(call_id, None)
        if coordinator is not None:
            await coordinator.stop("removed")
            logger.info("call_removed call=%s reason=%s", call_id, coordinator.termination_reason)

    async def handle_operator_leg(self, websocket: RawWebSocket) -> None:
        operator_id = str(uuid.uuid4())
        operator = OperatorConnection(operator_id, self._channel(websocket, f"operator-{operator_id}"), self.registry)
        async with self._lock:
            self.operators[operator_id] = operator
        logger.info("operator_connected operator=%s", operator_id)
        try:
            await operator.run()
        finally:
            async with self._lock:
                self.operators.pop(operator_id, None)

    async def shutdown_all(self) -> None:
        """Tear down every active call."""
        logger.info("Shutting down all calls")
        async with self._lock:
            coordinators = list(self.calls.values())
            self.calls.clear()
        for coordinator in coordinators:
            await coordinator.stop("shutdown")
        logger.info("All calls shut down count=%s", len(coordinators))

    def get_active_count(self) -> int:
        return len(self.calls)


__all__ = ["SessionManager"]
