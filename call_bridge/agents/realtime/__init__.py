from .connection import RealtimeAgentConnection
from .inbound_handler import RealtimeInboundHandler
from .outbound_handler import RealtimeOutboundHandler

__all__ = ["RealtimeAgentConnection", "RealtimeInboundHandler", "RealtimeOutboundHandler"]
