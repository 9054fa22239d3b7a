from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .utils.dict_utils import deep_merge

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""


TOPOLOGY_SINGLE = "single"
TOPOLOGY_DUAL = "dual"


@dataclass
class SystemConfig:
    log_level: str = "INFO"
    log_wire: bool = False
    log_wire_dir: str = "logs"

    def to_dict(self) -> Dict:
        return {
            "log_level": self.log_level,
            "log_wire": self.log_wire,
            "log_wire_dir": self.log_wire_dir,
        }


@dataclass
class AgentConfig:
    endpoint: str = "wss://api.openai.com/v1/realtime"
    model: str = "gpt-4o-realtime-preview-2024-10-01"
    api_key: Optional[str] = None
    audio_format: str = "g711_ulaw"
    voice: str = "alloy"
    modalities: List[str] = field(default_factory=lambda: ["text", "audio"])
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 600
    ping_interval: float = 20
    ping_timeout: float = 10

    def to_dict(self) -> Dict:
        return {
            "endpoint": self.endpoint,
            "model": self.model,
            "api_key": self.api_key,
            "audio_format": self.audio_format,
            "voice": self.voice,
            "modalities": list(self.modalities),
            "prefix_padding_ms": self.prefix_padding_ms,
            "silence_duration_ms": self.silence_duration_ms,
            "ping_interval": self.ping_interval,
            "ping_timeout": self.ping_timeout,
        }


@dataclass
class BridgeConfig:
    topology: str = TOPOLOGY_SINGLE
    half_duplex: bool = True
    # Time to keep the mic closed after the agent finishes sending audio.
    # Echo can arrive 200-500ms after the last chunk leaves the server.
    echo_debounce_ms: int = 500
    vad_threshold: float = 0.6
    source_language: str = "Russian"
    target_language: str = "English"
    pending_queue_max: int = 500
    event_queue_max: int = 2_000

    def validate(self) -> None:
        if self.topology not in (TOPOLOGY_SINGLE, TOPOLOGY_DUAL):
            raise ConfigError(f"Unknown bridge topology '{self.topology}' (expected 'single' or 'dual')")
        if not 0.0 <= float(self.vad_threshold) <= 1.0:
            raise ConfigError(f"bridge.vad_threshold must be within [0, 1], got {self.vad_threshold}")
        if int(self.echo_debounce_ms) < 0:
            raise ConfigError(f"bridge.echo_debounce_ms must be >= 0, got {self.echo_debounce_ms}")
        if int(self.pending_queue_max) <= 0 or int(self.event_queue_max) <= 0:
            raise ConfigError("bridge queue sizes must be positive")

    def to_dict(self) -> Dict:
        return {
            "topology": self.topology,
            "half_duplex": self.half_duplex,
            "echo_debounce_ms": self.echo_debounce_ms,
            "vad_threshold": self.vad_threshold,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "pending_queue_max": self.pending_queue_max,
            "event_queue_max": self.event_queue_max,
        }


@dataclass
class Config:
    system: SystemConfig = field(default_factory=SystemConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)

    def to_dict(self) -> Dict:
        return {
            "system": self.system.to_dict(),
            "agent": self.agent.to_dict(),
            "bridge": self.bridge.to_dict(),
        }

    @classmethod
    def from_yaml(cls, paths: list[Path]) -> "Config":
        """Load and merge multiple YAML config files.

        Configs are merged left-to-right on top of DEFAULT_CONFIG, with later
        files overriding earlier ones. Missing files are skipped with a warning.
        """
        valid_paths = []
        for path in paths or []:
            if Path(path).is_file():
                valid_paths.append(Path(path))
            else:
                logger.warning("Config path does not exist or is not a file: %s", path)

        if not valid_paths:
            logger.info("No valid config files found, using default config")
            return DEFAULT_CONFIG

        merged_dict = DEFAULT_CONFIG.to_dict()
        for path in valid_paths:
            with path.open("r", encoding="utf-8") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Top-level YAML value in {path} must be a mapping")
            merged_dict = deep_merge(merged_dict, data)

        return cls.from_dict(merged_dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        system = data.get("system") or {}
        agent = data.get("agent") or {}
        bridge = data.get("bridge") or {}

        try:
            config = cls(
                system=SystemConfig(**system),
                agent=AgentConfig(**agent),
                bridge=BridgeConfig(**bridge),
            )
        except TypeError as exc:
            raise ConfigError(f"Unknown configuration key: {exc}") from exc

        config.bridge.validate()
        return config


DEFAULT_CONFIG = Config()
