from .agent_session import AgentSession, AgentSessionState, SubmitOutcome
from .base import AgentConnection
from .instructions import build_instructions
from .realtime import RealtimeAgentConnection

__all__ = [
    "AgentConnection",
    "AgentSession",
    "AgentSessionState",
    "RealtimeAgentConnection",
    "SubmitOutcome",
    "build_instructions",
]
