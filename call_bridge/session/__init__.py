from .coordinator import AgentConnectionFactory, CallCoordinator, CoordinatorState
from .echo_gate import EchoGate
from .operator_registry import OperatorRegistry
from .routing import RoutingTable
from .session_manager import SessionManager

__all__ = [
    "AgentConnectionFactory",
    "CallCoordinator",
    "CoordinatorState",
    "EchoGate",
    "OperatorRegistry",
    "RoutingTable",
    "SessionManager",
]
