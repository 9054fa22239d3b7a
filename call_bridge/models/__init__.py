"""Shared models for the call bridge."""

from .agent_events import BENIGN_ERROR_CODES, AgentEvent, AgentEventType
from .call_settings import CallSettings, LanguagePair, TurnDetectionConfig
from .coordinator_events import CoordinatorEvent, CoordinatorEventKind, LegRole
from .media_frame import FrameDirection, MediaFrame

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "BENIGN_ERROR_CODES",
    "CallSettings",
    "CoordinatorEvent",
    "CoordinatorEventKind",
    "FrameDirection",
    "LanguagePair",
    "LegRole",
    "MediaFrame",
    "TurnDetectionConfig",
]
