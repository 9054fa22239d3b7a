"""Half-duplex echo gate for one audio sink."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..models.coordinator_events import LegRole
from ..utils.time_utils import MonotonicClock

logger = logging.getLogger(__name__)


class EchoGate:
    """Tracks whether agent audio is playing into one leg.

    While agent audio plays, the leg's microphone hears it back. With
    half-duplex enforced, inbound frames are dropped and upstream speech
    detections are treated as echo until ``debounce_ms`` after the agent's
    audio stream ended.

    The unlock happens either when the debounce task fires or when the
    deadline is observed to have passed, whichever comes first.
    """

    def __init__(
        self,
        call_id: str,
        leg: LegRole,
        *,
        debounce_ms: int = 500,
        half_duplex: bool = True,
        clock: Callable[[], int] = MonotonicClock.now_ms,
    ) -> None:
        self.call_id = call_id
        self.leg = leg
        self.debounce_ms = debounce_ms
        self.half_duplex = half_duplex
        self._clock = clock
        self._speaking = False
        self._unlock_deadline_ms: Optional[int] = None
        self._unlock_task: Optional[asyncio.Task] = None
        self._shut_down = False

    @property
    def is_agent_speaking(self) -> bool:
        if self._speaking and self._unlock_deadline_ms is not None and self._clock() >= self._unlock_deadline_ms:
            self._unlock("deadline")
        return self._speaking

    @property
    def unlock_deadline_ms(self) -> Optional[int]:
        return self._unlock_deadline_ms

    @property
    def has_pending_unlock(self) -> bool:
        return self._unlock_task is not None and not self._unlock_task.done()

    def on_agent_audio_emitted(self) -> None:
        if self._shut_down:
            return
        self._cancel_timer()
        self._unlock_deadline_ms = None
        if not self._speaking:
            logger.debug("echo_gate_locked call=%s leg=%s", self.call_id, self.leg.value)
        self._speaking = True

    def on_agent_audio_stream_ended(self) -> None:
        if self._shut_down or not self.is_agent_speaking:
            return
        self._cancel_timer()
        if self.debounce_ms <= 0:
            self._unlock("immediate")
            return
        self._unlock_deadline_ms = self._clock() + self.debounce_ms
        self._unlock_task = asyncio.get_running_loop().create_task(
            self._unlock_after(self.debounce_ms / 1000),
            name=f"echo-gate-{self.call_id}-{self.leg.value}",
        )
        logger.debug(
            "echo_gate_debounce_armed call=%s leg=%s debounce_ms=%s",
            self.call_id,
            self.leg.value,
            self.debounce_ms,
        )

    def should_admit_inbound_frame(self) -> bool:
        if not self.half_duplex:
            return True
        return not self.is_agent_speaking

    def should_treat_as_interruption(self) -> bool:
        """False when a speech detection is most likely the agent's own voice."""
        if not self.half_duplex:
            return True
        return not self.is_agent_speaking

    def shutdown(self) -> None:
        self._shut_down = True
        self._cancel_timer()
        self._unlock_deadline_ms = None

    async def _unlock_after(self, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        self._unlock_task = None
        self._unlock("timer")

    def _unlock(self, trigger: str) -> None:
        self._cancel_timer()
        self._speaking = False
        self._unlock_deadline_ms = None
        logger.debug("echo_gate_unlocked call=%s leg=%s trigger=%s", self.call_id, self.leg.value, trigger)

    def _cancel_timer(self) -> None:
        task, self._unlock_task = self._unlock_task, None
        if task is not None and not task.done():
            task.cancel()


__all__ = ["EchoGate"]
