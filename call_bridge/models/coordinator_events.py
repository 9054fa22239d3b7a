from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.time_utils import MonotonicClock
from .agent_events import AgentEvent
from .media_frame import MediaFrame


class LegRole(str, Enum):
    """A human side of the call. Agents are identified by the leg they listen to."""

    CALLER = "caller"
    OPERATOR = "operator"


class CoordinatorEventKind(str, Enum):
    CALL_START = "call.start"
    CALL_MEDIA = "call.media"
    CALL_STOP = "call.stop"
    CALL_CLOSED = "call.closed"
    OPERATOR_AUDIO = "operator.audio"
    OPERATOR_CLOSED = "operator.closed"
    AGENT_CONNECTED = "agent.connected"
    AGENT_EVENT = "agent.event"
    AGENT_FAILED = "agent.failed"


@dataclass
class CoordinatorEvent:
    """Everything the call coordinator reacts to, from every source, in one shape."""

    kind: CoordinatorEventKind
    leg: Optional[LegRole] = None
    frame: Optional[MediaFrame] = None
    agent_event: Optional[AgentEvent] = None
    stream_id: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None
    timestamp_ms: int = field(default_factory=MonotonicClock.now_ms)

    @classmethod
    def call_start(cls, stream_id: str, parameters: Optional[Dict[str, Any]] = None) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.CALL_START, leg=LegRole.CALLER, stream_id=stream_id, parameters=parameters or {})

    @classmethod
    def call_media(cls, frame: MediaFrame) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.CALL_MEDIA, leg=LegRole.CALLER, frame=frame)

    @classmethod
    def call_stop(cls) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.CALL_STOP, leg=LegRole.CALLER)

    @classmethod
    def call_closed(cls, reason: str = "disconnected") -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.CALL_CLOSED, leg=LegRole.CALLER, reason=reason)

    @classmethod
    def operator_audio(cls, frame: MediaFrame) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.OPERATOR_AUDIO, leg=LegRole.OPERATOR, frame=frame)

    @classmethod
    def operator_closed(cls, reason: str = "disconnected") -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.OPERATOR_CLOSED, leg=LegRole.OPERATOR, reason=reason)

    @classmethod
    def agent_connected(cls, leg: LegRole) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.AGENT_CONNECTED, leg=leg)

    @classmethod
    def from_agent(cls, leg: LegRole, event: AgentEvent) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.AGENT_EVENT, leg=leg, agent_event=event)

    @classmethod
    def agent_failed(cls, leg: LegRole, reason: str) -> "CoordinatorEvent":
        return cls(CoordinatorEventKind.AGENT_FAILED, leg=leg, reason=reason)


__all__ = ["CoordinatorEvent", "CoordinatorEventKind", "LegRole"]
