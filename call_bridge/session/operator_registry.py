"""Process-wide slot for the one operator waiting to be paired with a call."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..gateways.operator_leg import OperatorConnection

logger = logging.getLogger(__name__)


class OperatorRegistry:
    """Holds at most one waiting operator. The last one to register wins."""

    def __init__(self) -> None:
        self._waiting: Optional["OperatorConnection"] = None
        self._lock = asyncio.Lock()

    @property
    def waiting(self) -> Optional["OperatorConnection"]:
        return self._waiting

    async def register(self, operator: "OperatorConnection") -> None:
        async with self._lock:
            previous = self._waiting
            self._waiting = operator
        if previous is not None and previous is not operator:
            logger.warning(
                "operator_replaced previous=%s current=%s (previous operator is no longer reachable for calls)",
                previous.operator_id,
                operator.operator_id,
            )
        else:
            logger.info("operator_waiting operator=%s", operator.operator_id)

    async def claim(self) -> Optional["OperatorConnection"]:
        async with self._lock:
            operator, self._waiting = self._waiting, None
        if operator is None:
            logger.info("operator_claim_empty")
        else:
            logger.info("operator_claimed operator=%s", operator.operator_id)
        return operator

    async def unregister(self, operator: "OperatorConnection") -> bool:
        async with self._lock:
            if self._waiting is not operator:
                return False
            self._waiting = None
        logger.info("operator_unregistered operator=%s", operator.operator_id)
        return True


__all__ = ["OperatorRegistry"]
