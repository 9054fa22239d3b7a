"""Normalized events emitted by a translation agent connection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Upstream reports these when a commit found nothing buffered or a cancel found no
# response in flight. Neither is a failure.
BENIGN_ERROR_CODES = frozenset({"input_audio_buffer_commit_empty", "response_cancel_not_active"})


class AgentEventType(str, Enum):
    CONFIGURATION_ACKNOWLEDGED = "configuration_acknowledged"
    SPEECH_STARTED = "speech_started"
    SPEECH_STOPPED = "speech_stopped"
    AUDIO_CHUNK = "audio_chunk"
    AUDIO_STREAM_ENDED = "audio_stream_ended"
    RESPONSE_DONE = "response_done"
    TRANSCRIPT = "transcript"
    ERROR = "error"


@dataclass(frozen=True)
class AgentEvent:
    type: AgentEventType
    payload_b64: Optional[str] = None
    response_id: Optional[str] = None
    text: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_benign_error(self) -> bool:
        return self.type == AgentEventType.ERROR and self.code in BENIGN_ERROR_CODES

    @classmethod
    def audio_chunk(cls, payload_b64: str, response_id: Optional[str] = None) -> "AgentEvent":
        return cls(AgentEventType.AUDIO_CHUNK, payload_b64=payload_b64, response_id=response_id)

    @classmethod
    def error(cls, code: Optional[str], message: Optional[str]) -> "AgentEvent":
        return cls(AgentEventType.ERROR, code=code, message=message)


__all__ = ["AgentEvent", "AgentEventType", "BENIGN_ERROR_CODES"]
