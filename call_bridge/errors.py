from __future__ import annotations


class BridgeError(Exception):
    """Base class for call bridge errors."""


class AgentTransportError(BridgeError):
    """Raised when the connection to a translation agent fails or drops."""


class MalformedMessageError(BridgeError, ValueError):
    """Raised when an inbound leg message cannot be parsed."""


class RoutingError(BridgeError):
    """Raised when a routing table would send agent audio back to its source leg."""


class LegTransportError(BridgeError):
    """Raised when writing to a call leg or operator leg fails."""
