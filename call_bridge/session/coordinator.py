"""Per-call coordinator: agent sessions, echo gates and audio routing for one call."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, Optional

from ..agents.agent_session import AgentSession, SubmitOutcome
from ..agents.base import AgentConnection
from ..agents.realtime import RealtimeAgentConnection
from ..config import TOPOLOGY_SINGLE, Config
from ..errors import AgentTransportError, BridgeError, LegTransportError
from ..gateways.base import AudioSink
from ..gateways.call_leg import CallLegSink
from ..gateways.operator_leg import STATUS_CONNECTED, STATUS_WAITING, OperatorConnection
from ..models.agent_events import AgentEvent, AgentEventType
from ..models.call_settings import CallSettings
from ..models.coordinator_events import CoordinatorEvent, CoordinatorEventKind, LegRole
from ..models.media_frame import MediaFrame
from ..utils.time_utils import MonotonicClock
from .echo_gate import EchoGate
from .operator_registry import OperatorRegistry
from .routing import RoutingTable

logger = logging.getLogger(__name__)

AgentConnectionFactory = Callable[[str, LegRole], AgentConnection]

LIFECYCLE_EVENT_KINDS = frozenset(
    {
        CoordinatorEventKind.CALL_START,
        CoordinatorEventKind.CALL_STOP,
        CoordinatorEventKind.CALL_CLOSED,
        CoordinatorEventKind.OPERATOR_CLOSED,
        CoordinatorEventKind.AGENT_CONNECTED,
        CoordinatorEventKind.AGENT_FAILED,
    }
)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    TERMINATED = "terminated"


class CallCoordinator:
    """Drives one call from a single-consumer event queue.

    Agents are keyed by the leg they listen to; echo gates and sinks by the
    leg audio is played to. The routing table maps the former onto the
    latter. All state is mutated from the run loop only; agent pump tasks
    and the leg receive loops just publish events.
    """

    def __init__(
        self,
        call_id: str,
        config: Config,
        call_sink: CallLegSink,
        registry: OperatorRegistry,
        *,
        agent_factory: Optional[AgentConnectionFactory] = None,
        clock: Callable[[], int] = MonotonicClock.now_ms,
    ) -> None:
        self.call_id = call_id
        self.config = config
        self.registry = registry
        self.topology = config.bridge.topology
        self.routing = RoutingTable.for_topology(self.topology)
        self.state = CoordinatorState.IDLE
        self.stream_id: Optional[str] = None
        self.settings: Optional[CallSettings] = None
        self.operator: Optional[OperatorConnection] = None
        self.termination_reason: Optional[str] = None
        self.agents: Dict[LegRole, AgentSession] = {}
        self.gates: Dict[LegRole, EchoGate] = {}
        self.sinks: Dict[LegRole, AudioSink] = {LegRole.CALLER: call_sink}
        self._call_sink = call_sink
        self._agent_factory = agent_factory or self._default_agent_factory
        self._clock = clock
        self._queue: asyncio.Queue[CoordinatorEvent] = asyncio.Queue(maxsize=config.bridge.event_queue_max)
        self._overflow: Deque[CoordinatorEvent] = deque()
        self._task: Optional[asyncio.Task] = None
        self._pump_tasks: Dict[LegRole, asyncio.Task] = {}
        self._closed = asyncio.Event()
        self._created_ms = MonotonicClock.now_ms()
        self.stats = {
            "frames_admitted": 0,
            "frames_suppressed": 0,
            "frames_dropped": 0,
            "speech_echo_suppressed": 0,
            "interruptions": 0,
            "chunks_routed": 0,
            "late_chunks_dropped": 0,
            "benign_errors": 0,
            "events_dropped": 0,
            "lifecycle_overflowed": 0,
        }

    @property
    def is_single_agent(self) -> bool:
        return self.topology == TOPOLOGY_SINGLE

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _default_agent_factory(self, name: str, leg: LegRole) -> AgentConnection:
        return RealtimeAgentConnection(
            self.config.agent,
            name=name,
            log_wire=self.config.system.log_wire,
            log_wire_dir=self.config.system.log_wire_dir,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def publish_event(self, event: CoordinatorEvent) -> bool:
        """Enqueue an event without blocking.

        Media and agent events are dropped on overflow. Lifecycle events are
        never dropped: they go to an unbounded side queue the run loop drains
        first. Everything is dropped after termination.
        """
        if self.state == CoordinatorState.TERMINATED:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            if event.kind in LIFECYCLE_EVENT_KINDS:
                self._overflow.append(event)
                self.stats["lifecycle_overflowed"] += 1
                logger.warning("coordinator_queue_full_lifecycle_kept call=%s kind=%s", self.call_id, event.kind.value)
                return True
            self.stats["events_dropped"] += 1
            logger.warning(
                "coordinator_event_dropped call=%s kind=%s dropped=%s",
                self.call_id,
                event.kind.value,
                self.stats["events_dropped"],
            )
            return False

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name=f"coordinator-{self.call_id}")
        logger.info("coordinator_started call=%s topology=%s routing=%r", self.call_id, self.topology, self.routing)

    async def stop(self, reason: str = "shutdown") -> None:
        task = self._task
        if task is not None and not task.done():
            if self.state == CoordinatorState.TERMINATED:
                await asyncio.gather(task, return_exceptions=True)
            else:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        await self._teardown(reason)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _run(self) -> None:
        try:
            while self.state != CoordinatorState.TERMINATED:
                event = self._overflow.popleft() if self._overflow else await self._queue.get()
                try:
                    await self._process_event(event)
                except (AgentTransportError, LegTransportError) as exc:
                    logger.error("coordinator_transport_error call=%s kind=%s error=%s", self.call_id, event.kind.value, exc)
                    await self._teardown("transport_error")
                except Exception:
                    logger.exception("coordinator_event_failed call=%s kind=%s", self.call_id, event.kind.value)
                    await self._teardown("internal_error")
        except asyncio.CancelledError:
            logger.debug("coordinator_run_cancelled call=%s", self.call_id)

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    async def _process_event(self, event: CoordinatorEvent) -> None:
        if self.state == CoordinatorState.TERMINATED:
            return

        kind = event.kind
        if kind == CoordinatorEventKind.CALL_START:
            await self._on_call_start(event)
        elif kind == CoordinatorEventKind.CALL_MEDIA:
            await self._on_inbound_audio(LegRole.CALLER, event.frame)
        elif kind == CoordinatorEventKind.OPERATOR_AUDIO:
            await self._on_inbound_audio(LegRole.OPERATOR, event.frame)
        elif kind in (CoordinatorEventKind.CALL_STOP, CoordinatorEventKind.CALL_CLOSED):
            await self._teardown(event.reason or "call_stopped")
        elif kind == CoordinatorEventKind.OPERATOR_CLOSED:
            await self._teardown(f"operator_{event.reason or 'closed'}", return_operator=False)
        elif kind == CoordinatorEventKind.AGENT_CONNECTED:
            await self._on_agent_connected(event.leg)
        elif kind == CoordinatorEventKind.AGENT_EVENT:
            await self._on_agent_event(event.leg, event.agent_event)
        elif kind == CoordinatorEventKind.AGENT_FAILED:
            logger.error("agent_failed call=%s leg=%s reason=%s", self.call_id, event.leg.value, event.reason)
            await self._teardown("agent_failed")
        else:
            logger.debug("coordinator_event_unhandled call=%s kind=%s", self.call_id, kind)

    async def _on_call_start(self, event: CoordinatorEvent) -> None:
        if self.state != CoordinatorState.IDLE:
            logger.warning("call_start_duplicate call=%s state=%s", self.call_id, self.state.value)
            return

        self.stream_id = event.stream_id
        self.settings = CallSettings.from_start_parameters(event.parameters, self.config.bridge, self.config.agent)

        if not self.is_single_agent:
            operator = await self.registry.claim()
            if operator is None:
                logger.warning("call_rejected_no_operator call=%s stream=%s", self.call_id, self.stream_id)
                await self._teardown("no_operator")
                return
            self.operator = operator
            operator.attach(self)
            self.sinks[LegRole.OPERATOR] = operator.sink
            await operator.send_status(STATUS_CONNECTED)

        self.state = CoordinatorState.CONNECTING
        logger.info(
            "call_started call=%s stream=%s topology=%s languages=%s half_duplex=%s debounce_ms=%s",
            self.call_id,
            self.stream_id,
            self.topology,
            self.settings.language_pair,
            self.settings.half_duplex,
            self.settings.echo_debounce_ms,
        )

        for source in self.routing.sources:
            self._open_agent(source)

    def _open_agent(self, source: LegRole) -> None:
        settings = self.settings
        sink = self.routing.sink_for(source)
        self.gates[sink] = EchoGate(
            self.call_id,
            sink,
            debounce_ms=settings.echo_debounce_ms,
            half_duplex=settings.half_duplex,
            clock=self._clock,
        )

        # The caller speaks the source language; the operator speaks the target one.
        language_pair = settings.language_pair if source == LegRole.CALLER else settings.language_pair.inverted()
        name = f"{self.call_id}-{source.value}"
        session = AgentSession(
            name,
            self._agent_factory(name, source),
            self.config.agent,
            bidirectional=self.is_single_agent,
            pending_queue_max=self.config.bridge.pending_queue_max,
        )
        session.open(language_pair, settings.voice, settings.turn_detection)
        self.agents[source] = session
        self._pump_tasks[source] = asyncio.create_task(
            self._pump_agent(source, session),
            name=f"agent-pump-{name}",
        )

    async def _pump_agent(self, source: LegRole, session: AgentSession) -> None:
        try:
            await session.connect()
            self.publish_event(CoordinatorEvent.agent_connected(source))
            async for agent_event in session.events():
                self.publish_event(CoordinatorEvent.from_agent(source, agent_event))
        except asyncio.CancelledError:
            raise
        except BridgeError as exc:
            self.publish_event(CoordinatorEvent.agent_failed(source, str(exc)))
            return
        except Exception as exc:
            logger.exception("agent_pump_failed call=%s leg=%s", self.call_id, source.value)
            self.publish_event(CoordinatorEvent.agent_failed(source, repr(exc)))
            return

        if session.is_open:
            self.publish_event(CoordinatorEvent.agent_failed(source, "agent event stream ended"))

    async def _on_inbound_audio(self, leg: LegRole, frame: Optional[MediaFrame]) -> None:
        if frame is None or self.state not in (CoordinatorState.CONNECTING, CoordinatorState.ACTIVE):
            logger.debug("inbound_audio_ignored call=%s leg=%s state=%s", self.call_id, leg.value, self.state.value)
            return

        session = self.agents.get(leg)
        if session is None:
            return

        gate = self.gates.get(leg)
        if gate is not None and not gate.should_admit_inbound_frame():
            self.stats["frames_suppressed"] += 1
            return

        outcome = await session.submit_audio(frame)
        if outcome == SubmitOutcome.DROPPED:
            self.stats["frames_dropped"] += 1
        else:
            self.stats["frames_admitted"] += 1

    async def _on_agent_connected(self, leg: LegRole) -> None:
        session = self.agents.get(leg)
        if session is None or not session.is_open:
            return
        await session.configure()

    async def _on_agent_event(self, leg: LegRole, event: Optional[AgentEvent]) -> None:
        session = self.agents.get(leg)
        if event is None or session is None or not session.is_open:
            return

        if event.type == AgentEventType.CONFIGURATION_ACKNOWLEDGED:
            await session.on_configuration_acknowledged()
            self._maybe_activate()
        elif event.type == AgentEventType.AUDIO_CHUNK:
            await self._route_agent_audio(leg, session, event)
        elif event.type == AgentEventType.AUDIO_STREAM_ENDED:
            self.gates[self.routing.sink_for(leg)].on_agent_audio_stream_ended()
        elif event.type == AgentEventType.RESPONSE_DONE:
            # Cancelled or failed responses can end without an audio done message.
            gate = self.gates[self.routing.sink_for(leg)]
            if not gate.has_pending_unlock:
                gate.on_agent_audio_stream_ended()
        elif event.type == AgentEventType.SPEECH_STARTED:
            await self._on_speech_started(leg)
        elif event.type == AgentEventType.SPEECH_STOPPED:
            logger.debug("speech_stopped call=%s leg=%s", self.call_id, leg.value)
        elif event.type == AgentEventType.TRANSCRIPT:
            logger.info("agent_transcript call=%s leg=%s text=%s", self.call_id, leg.value, event.text)
        elif event.type == AgentEventType.ERROR:
            await self._on_agent_error(leg, session, event)

    def _maybe_activate(self) -> None:
        if self.state != CoordinatorState.CONNECTING:
            return
        open_sessions = [session for session in self.agents.values() if session.is_open]
        if open_sessions and all(session.is_ready for session in open_sessions):
            self.state = CoordinatorState.ACTIVE
            logger.info("call_active call=%s agents=%s", self.call_id, len(open_sessions))

    async def _route_agent_audio(self, source: LegRole, session: AgentSession, event: AgentEvent) -> None:
        if not session.accepts_response(event.response_id):
            self.stats["late_chunks_dropped"] += 1
            return
        sink_leg = self.routing.sink_for(source)
        sink = self.sinks.get(sink_leg)
        if sink is None or not event.payload_b64:
            return
        self.gates[sink_leg].on_agent_audio_emitted()
        await sink.send_audio(event.payload_b64)
        self.stats["chunks_routed"] += 1

    async def _on_speech_started(self, leg: LegRole) -> None:
        gate = self.gates.get(leg)
        if gate is not None and not gate.should_treat_as_interruption():
            self.stats["speech_echo_suppressed"] += 1
            logger.info("speech_started_ignored_as_echo call=%s leg=%s", self.call_id, leg.value)
            return

        self.stats["interruptions"] += 1
        logger.info("interruption call=%s leg=%s", self.call_id, leg.value)
        sink = self.sinks.get(leg)
        if sink is not None:
            await sink.clear()
        speaking_agent = self.routing.source_for_sink(leg)
        target = self.agents.get(speaking_agent) if speaking_agent is not None else None
        if target is not None:
            await target.cancel()

    async def _on_agent_error(self, leg: LegRole, session: AgentSession, event: AgentEvent) -> None:
        if event.is_benign_error:
            self.stats["benign_errors"] += 1
            return

        logger.error(
            "agent_error call=%s leg=%s code=%s message=%s",
            self.call_id,
            leg.value,
            event.code,
            event.message,
        )
        await self._close_agent(leg, session)
        if self.is_single_agent or not any(s.is_open for s in self.agents.values()):
            await self._teardown("agent_error")
            return
        logger.warning("call_direction_stopped call=%s leg=%s", self.call_id, leg.value)
        self._maybe_activate()

    async def _close_agent(self, leg: LegRole, session: AgentSession) -> None:
        await session.close()
        task = self._pump_tasks.pop(leg, None)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _teardown(self, reason: str, *, return_operator: bool = True) -> None:
        if self.state == CoordinatorState.TERMINATED:
            return
        previous_state = self.state
        self.state = CoordinatorState.TERMINATED
        self.termination_reason = reason

        for gate in self.gates.values():
            gate.shutdown()

        pump_tasks = list(self._pump_tasks.values())
        self._pump_tasks.clear()
        for task in pump_tasks:
            task.cancel()
        await asyncio.gather(*pump_tasks, return_exceptions=True)

        try:
            for session in self.agents.values():
                await session.close()
            await self._release_operator(return_operator)
            await self._call_sink.close()
        finally:
            logger.info(
                "call_terminated call=%s stream=%s reason=%s previous_state=%s duration_ms=%s stats=%s",
                self.call_id,
                self.stream_id,
                reason,
                previous_state.value,
                MonotonicClock.elapsed_ms_from(self._created_ms),
                self.stats,
            )
            self._closed.set()

    async def _release_operator(self, return_to_waiting: bool) -> None:
        operator, self.operator = self.operator, None
        if operator is None:
            return
        self.sinks.pop(LegRole.OPERATOR, None)
        operator.detach(self)
        if not return_to_waiting or not operator.reachable:
            logger.info("operator_not_returned call=%s operator=%s", self.call_id, operator.operator_id)
            return

        await self.registry.register(operator)
        try:
            await operator.send_status(STATUS_WAITING)
        except LegTransportError as exc:
            logger.warning("operator_status_failed call=%s operator=%s error=%s", self.call_id, operator.operator_id, exc)
            await self.registry.unregister(operator)


__all__ = ["AgentConnectionFactory", "CallCoordinator", "CoordinatorState"]
