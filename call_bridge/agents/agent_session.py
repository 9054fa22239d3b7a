"""One logical session with an upstream translation agent."""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Any, AsyncIterator, Deque, Dict, Optional

from ..config import AgentConfig
from ..core.queues import BoundedQueue
from ..models.agent_events import AgentEvent
from ..models.call_settings import LanguagePair, TurnDetectionConfig
from ..models.media_frame import MediaFrame
from .base import AgentConnection
from .instructions import build_instructions

logger = logging.getLogger(__name__)

# Late chunks only ever belong to the last few cancelled responses.
CANCELLED_RESPONSES_KEPT = 8


class AgentSessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"


class SubmitOutcome(str, Enum):
    SENT = "sent"
    QUEUED = "queued"
    DROPPED = "dropped"


class AgentSession:
    """Readiness contract around an ``AgentConnection``.

    No audio reaches the agent before it has acknowledged the session
    configuration. Until then frames wait in a pending queue that is
    flushed once, in order, on acknowledgement.
    """

    def __init__(
        self,
        session_id: str,
        connection: AgentConnection,
        agent_config: AgentConfig,
        *,
        bidirectional: bool = True,
        pending_queue_max: int = 500,
    ) -> None:
        self.session_id = session_id
        self.agent_config = agent_config
        self.bidirectional = bidirectional
        self.state = AgentSessionState.IDLE
        self.language_pair: Optional[LanguagePair] = None
        self.voice_profile: Optional[str] = None
        self.turn_detection: Optional[TurnDetectionConfig] = None
        self.current_response_id: Optional[str] = None
        self._connection = connection
        self._pending: BoundedQueue[MediaFrame] = BoundedQueue(pending_queue_max)
        self._cancelled_responses: Deque[str] = deque(maxlen=CANCELLED_RESPONSES_KEPT)
        self.stats = {
            "sent": 0,
            "queued": 0,
            "flushed": 0,
            "dropped_closed": 0,
            "cancels": 0,
        }

    @property
    def is_open(self) -> bool:
        return self.state in (AgentSessionState.CONNECTING, AgentSessionState.READY)

    @property
    def is_ready(self) -> bool:
        return self.state == AgentSessionState.READY

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def open(
        self,
        language_pair: LanguagePair,
        voice_profile: str,
        turn_detection: TurnDetectionConfig,
    ) -> None:
        if self.state != AgentSessionState.IDLE:
            raise RuntimeError(f"Agent session {self.session_id} already opened (state={self.state.value})")
        self.language_pair = language_pair
        self.voice_profile = voice_profile
        self.turn_detection = turn_detection
        self.state = AgentSessionState.CONNECTING
        logger.info(
            "agent_session_opening session=%s languages=%s voice=%s vad_threshold=%s",
            self.session_id,
            language_pair,
            voice_profile,
            turn_detection.threshold,
        )

    async def connect(self) -> None:
        if self.state != AgentSessionState.CONNECTING:
            raise RuntimeError(f"Agent session {self.session_id} cannot connect in state {self.state.value}")
        await self._connection.connect()

    def events(self) -> AsyncIterator[AgentEvent]:
        return self._connection.events()

    def build_session_params(self) -> Dict[str, Any]:
        if self.language_pair is None or self.turn_detection is None:
            raise RuntimeError(f"Agent session {self.session_id} has not been opened")
        return {
            "modalities": list(self.agent_config.modalities),
            "instructions": build_instructions(self.language_pair, self.bidirectional),
            "voice": self.voice_profile,
            "input_audio_format": self.agent_config.audio_format,
            "output_audio_format": self.agent_config.audio_format,
            "turn_detection": self.turn_detection.to_dict(),
        }

    async def configure(self) -> None:
        """Send the session configuration. The session stays CONNECTING until it is acknowledged."""
        if self.state != AgentSessionState.CONNECTING:
            logger.warning("agent_configure_ignored session=%s state=%s", self.session_id, self.state.value)
            return
        await self._connection.send_configuration(self.build_session_params())
        logger.info("agent_configuration_sent session=%s pending=%s", self.session_id, len(self._pending))

    async def on_configuration_acknowledged(self) -> int:
        """Become READY and flush pending frames in FIFO order. Returns the number flushed."""
        if self.state != AgentSessionState.CONNECTING:
            logger.debug("agent_ack_ignored session=%s state=%s", self.session_id, self.state.value)
            return 0

        frames = self._pending.drain()
        self.state = AgentSessionState.READY
        for frame in frames:
            await self._connection.append_audio(frame.payload_b64)
        self.stats["flushed"] += len(frames)
        logger.info("agent_session_ready session=%s flushed=%s", self.session_id, len(frames))
        return len(frames)

    async def submit_audio(self, frame: MediaFrame) -> SubmitOutcome:
        if self.state == AgentSessionState.READY:
            await self._connection.append_audio(frame.payload_b64)
            self.stats["sent"] += 1
            return SubmitOutcome.SENT

        if self.state == AgentSessionState.CONNECTING:
            self._pending.put(frame)
            self.stats["queued"] += 1
            return SubmitOutcome.QUEUED

        self.stats["dropped_closed"] += 1
        if self.stats["dropped_closed"] == 1:
            logger.warning(
                "agent_frame_dropped session=%s state=%s (further drops counted only)",
                self.session_id,
                self.state.value,
            )
        return SubmitOutcome.DROPPED

    def accepts_response(self, response_id: Optional[str]) -> bool:
        """Track the in-flight response; False for audio from a response we cancelled."""
        if response_id and response_id in self._cancelled_responses:
            return False
        if response_id:
            self.current_response_id = response_id
        return True

    async def cancel(self) -> bool:
        if self.state != AgentSessionState.READY:
            logger.debug("agent_cancel_skipped session=%s state=%s", self.session_id, self.state.value)
            return False
        if self.current_response_id and self.current_response_id not in self._cancelled_responses:
            self._cancelled_responses.append(self.current_response_id)
        await self._connection.cancel_response()
        self.stats["cancels"] += 1
        logger.info("agent_response_cancelled session=%s response_id=%s", self.session_id, self.current_response_id)
        return True

    async def close(self) -> None:
        if self.state in (AgentSessionState.CLOSING, AgentSessionState.CLOSED):
            return
        self.state = AgentSessionState.CLOSING
        discarded = self._pending.clear()
        try:
            await self._connection.close()
        finally:
            self.state = AgentSessionState.CLOSED
            logger.info("agent_session_closed session=%s discarded=%s stats=%s", self.session_id, discarded, self.stats)


__all__ = ["AgentSession", "AgentSessionState", "SubmitOutcome"]
