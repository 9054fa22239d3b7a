"""Duplex session coordinator bridging telephony call legs to realtime translation agents."""

from .config import Config, ConfigError
from .session import CallCoordinator, OperatorRegistry, SessionManager
from .utils.log_setup import configure_logging

__all__ = ["CallCoordinator", "Config", "ConfigError", "OperatorRegistry", "SessionManager", "configure_logging"]
