"""Per-call settings resolved from the call-start message and bridge defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

from ..config import AgentConfig, BridgeConfig
from ..utils.dict_utils import first_present

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LanguagePair:
    source: str
    target: str

    def inverted(self) -> "LanguagePair":
        return LanguagePair(source=self.target, target=self.source)

    def __str__(self) -> str:
        return f"{self.source}->{self.target}"


@dataclass(frozen=True)
class TurnDetectionConfig:
    threshold: float
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 600
    type: str = "server_vad"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "threshold": self.threshold,
            "prefix_padding_ms": self.prefix_padding_ms,
            "silence_duration_ms": self.silence_duration_ms,
        }


@dataclass(frozen=True)
class CallSettings:
    language_pair: LanguagePair
    voice: str
    turn_detection: TurnDetectionConfig
    echo_debounce_ms: int
    half_duplex: bool

    @classmethod
    def defaults(cls, bridge: BridgeConfig, agent: AgentConfig) -> "CallSettings":
        return cls.from_start_parameters({}, bridge, agent)

    @classmethod
    def from_start_parameters(
        cls,
        params: Optional[Mapping[str, Any]],
        bridge: BridgeConfig,
        agent: AgentConfig,
    ) -> "CallSettings":
        """Resolve settings from call-start custom parameters.

        Unset or unparseable values fall back to the configured defaults;
        a bad value never rejects the call.
        """
        params = params or {}

        source = first_present(params, "originLang", "origin_lang", "sourceLanguage") or bridge.source_language
        target = first_present(params, "translatingLang", "translating_lang", "targetLanguage") or bridge.target_language
        voice = first_present(params, "voice") or agent.voice

        threshold = _parse(params, ("vadThreshold", "vad_threshold"), float, bridge.vad_threshold)
        if not 0.0 <= threshold <= 1.0:
            logger.warning("call_param_out_of_range name=vadThreshold value=%s", threshold)
            threshold = bridge.vad_threshold

        debounce_ms = _parse(params, ("echoDebounceMs", "echo_debounce_ms"), int, bridge.echo_debounce_ms)
        if debounce_ms < 0:
            logger.warning("call_param_out_of_range name=echoDebounceMs value=%s", debounce_ms)
            debounce_ms = bridge.echo_debounce_ms

        half_duplex = _parse(params, ("halfDuplex", "half_duplex"), _parse_bool, bridge.half_duplex)

        return cls(
            language_pair=LanguagePair(source=str(source), target=str(target)),
            voice=str(voice),
            turn_detection=TurnDetectionConfig(
                threshold=threshold,
                prefix_padding_ms=agent.prefix_padding_ms,
                silence_duration_ms=agent.silence_duration_ms,
            ),
            echo_debounce_ms=debounce_ms,
            half_duplex=half_duplex,
        )


def _parse(params: Mapping[str, Any], keys: tuple, convert: Callable[[Any], T], default: T) -> T:
    raw = first_present(params, *keys)
    if raw is None:
        return default
    try:
        return convert(raw)
    except (TypeError, ValueError):
        logger.warning("call_param_invalid name=%s value=%r using_default=%s", keys[0], raw, default)
        return default


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in ("true", "yes", "1", "on"):
        return True
    if normalized in ("false", "no", "0", "off"):
        return False
    raise ValueError(f"Cannot parse '{value}' as boolean")


__all__ = ["CallSettings", "LanguagePair", "TurnDetectionConfig"]
