from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FrameDirection(str, Enum):
    INBOUND = "inbound"  # from a human leg towards an agent
    OUTBOUND = "outbound"  # from an agent towards a human leg


@dataclass(frozen=True, slots=True)
class MediaFrame:
    """One chunk of encoded audio.

    The payload stays in the base64 text form it arrived in; the bridge
    only passes it through and never decodes it.
    """

    stream_id: str
    direction: FrameDirection
    payload_b64: str
    codec_hint: str = "g711_ulaw"

    def __len__(self) -> int:
        return len(self.payload_b64)


__all__ = ["FrameDirection", "MediaFrame"]
