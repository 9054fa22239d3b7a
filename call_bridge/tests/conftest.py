import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedOK

from call_bridge.agents.base import AgentConnection
from call_bridge.config import Config
from call_bridge.core.websocket_channel import WebSocketChannel
from call_bridge.errors import AgentTransportError
from call_bridge.gateways.call_leg import CallLegSink
from call_bridge.gateways.operator_leg import OperatorConnection
from call_bridge.models import AgentEvent, AgentEventType, CoordinatorEvent, FrameDirection, LegRole, MediaFrame
from call_bridge.session.coordinator import CallCoordinator, CoordinatorState
from call_bridge.session.operator_registry import OperatorRegistry

_CLOSE = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets connection."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: List[str] = []
        self.closed = False

    def feed(self, message: Any) -> None:
        self.incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def feed_close(self) -> None:
        self.incoming.put_nowait(_CLOSE)

    async def recv(self) -> Any:
        item = await self.incoming.get()
        if item is _CLOSE:
            raise ConnectionClosedOK(None, None)
        return item

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(_CLOSE)

    def sent_json(self) -> List[Dict[str, Any]]:
        return [json.loads(message) for message in self.sent]


class FakeAgentConnection(AgentConnection):
    def __init__(self, name: str, *, fail_connect: bool = False) -> None:
        self.name = name
        self.fail_connect = fail_connect
        self.connected = False
        self.closed = False
        self.configurations: List[Dict[str, Any]] = []
        self.audio: List[str] = []
        self.cancels = 0
        self._events: asyncio.Queue = asyncio.Queue()

    async def connect(self) -> None:
        if self.fail_connect:
            raise AgentTransportError("connection refused")
        self.connected = True

    async def send_configuration(self, session_params: Dict[str, Any]) -> None:
        self.configurations.append(session_params)

    async def append_audio(self, payload_b64: str) -> None:
        self.audio.append(payload_b64)

    async def cancel_response(self) -> None:
        self.cancels += 1

    async def close(self) -> None:
        self.closed = True
        self._events.put_nowait(None)

    def emit(self, event: AgentEvent) -> None:
        self._events.put_nowait(event)

    def drop(self) -> None:
        self._events.put_nowait(AgentTransportError("connection reset"))

    async def events(self):
        while True:
            item = await self._events.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeAgentFactory:
    def __init__(self, *, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.connections: Dict[LegRole, FakeAgentConnection] = {}

    def __call__(self, name: str, leg: LegRole) -> FakeAgentConnection:
        connection = FakeAgentConnection(name, fail_connect=self.fail_connect)
        self.connections[leg] = connection
        return connection


class FakeClock:
    def __init__(self, now_ms: int = 0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


async def wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.002)


class CallHarness:
    """A coordinator wired to fake call-leg socket and fake agents."""

    STREAM_SID = "MZ-test"

    def __init__(self, config: Config, registry: OperatorRegistry, *, fail_connect: bool = False) -> None:
        self.config = config
        self.registry = registry
        self.clock = FakeClock()
        self.ws = FakeWebSocket()
        self.agents = FakeAgentFactory(fail_connect=fail_connect)
        self.sink = CallLegSink(WebSocketChannel(self.ws, name="call-test"))
        self.sink.bind(self.STREAM_SID)
        self.coordinator = CallCoordinator(
            "call-test",
            config,
            self.sink,
            registry,
            agent_factory=self.agents,
            clock=self.clock,
        )
        self._operator_tasks: List[asyncio.Task] = []

    def agent(self, leg: LegRole = LegRole.CALLER) -> FakeAgentConnection:
        return self.agents.connections[leg]

    async def start(self, parameters: Optional[Dict[str, Any]] = None) -> None:
        await self.coordinator.start()
        self.coordinator.publish_event(CoordinatorEvent.call_start(self.STREAM_SID, parameters))

    async def activate(self, parameters: Optional[Dict[str, Any]] = None) -> None:
        await self.start(parameters)
        legs = self.coordinator.routing.sources
        await wait_for(lambda: all(leg in self.agents.connections for leg in legs))
        await wait_for(lambda: all(self.agent(leg).configurations for leg in legs))
        for leg in legs:
            self.agent(leg).emit(AgentEvent(AgentEventType.CONFIGURATION_ACKNOWLEDGED))
        await wait_for(lambda: self.coordinator.state == CoordinatorState.ACTIVE)

    def caller_audio(self, payload: str) -> None:
        frame = MediaFrame(self.STREAM_SID, FrameDirection.INBOUND, payload)
        self.coordinator.publish_event(CoordinatorEvent.call_media(frame))

    def caller_media_sent(self) -> List[Dict[str, Any]]:
        return [message for message in self.ws.sent_json() if message["event"] == "media"]

    def caller_clears(self) -> List[Dict[str, Any]]:
        return [message for message in self.ws.sent_json() if message["event"] == "clear"]

    async def connect_operator(self, operator_id: str = "op-1"):
        ws = FakeWebSocket()
        operator = OperatorConnection(operator_id, WebSocketChannel(ws, name=f"operator-{operator_id}"), self.registry)
        self._operator_tasks.append(asyncio.create_task(operator.run()))
        await wait_for(lambda: self.registry.waiting is operator)
        return operator, ws

    async def close(self) -> None:
        await self.coordinator.stop("test_finished")
        for task in self._operator_tasks:
            task.cancel()
        await asyncio.gather(*self._operator_tasks, return_exceptions=True)


@pytest.fixture
def registry() -> OperatorRegistry:
    return OperatorRegistry()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def make_call(registry):
    harnesses: List[CallHarness] = []

    def _make(topology: str = "single", *, fail_connect: bool = False, **bridge: Any) -> CallHarness:
        config = Config.from_dict({"agent": {"api_key": "test-key"}, "bridge": {"topology": topology, **bridge}})
        harness = CallHarness(config, registry, fail_connect=fail_connect)
        harnesses.append(harness)
        return harness

    yield _make

    for harness in harnesses:
        await harness.close()


@pytest.fixture
def eventually():
    return wait_for


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def fake_agent() -> FakeAgentConnection:
    return FakeAgentConnection("agent-test")


@pytest.fixture
def agent_factory() -> FakeAgentFactory:
    return FakeAgentFactory()
