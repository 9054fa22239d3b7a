"""Adapters between the human legs' WebSockets and the call coordinator."""

from .base import AudioSink
from .call_leg import CallLegConnection, CallLegInputMapper, CallLegMessage, CallLegMessageType, CallLegSink
from .operator_leg import OperatorConnection, OperatorSink

__all__ = [
    "AudioSink",
    "CallLegConnection",
    "CallLegInputMapper",
    "CallLegMessage",
    "CallLegMessageType",
    "CallLegSink",
    "OperatorConnection",
    "OperatorSink",
]
