from __future__ import annotations

import logging

from ..config import SystemConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(system: SystemConfig) -> None:
    """Apply the bridge log format and level to the root logger.

    Meant to be called once by the hosting process before it starts
    accepting connections.
    """
    level = logging.getLevelName(str(system.log_level).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # Frame-level websocket chatter is only useful with wire logging on
    if not system.log_wire:
        logging.getLogger("websockets").setLevel(logging.WARNING)
