"""
Configuration management for the streaming decoder.

Provides dataclasses for configuration and YAML loading utilities.
"""

import math
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml

from .errors import InvalidConfiguration
from .types import (
    DEFAULT_SR,
    DEFAULT_MAX_BUFFER_S,
    DEFAULT_METHOD,
    DEFAULT_NUM_ACTIVE_PATHS,
    DEFAULT_RULE1_MIN_TRAILING_SILENCE_S,
    DEFAULT_RULE2_MIN_TRAILING_SILENCE_S,
    DEFAULT_RULE3_MIN_UTTERANCE_LENGTH_S,
    DEFAULT_POLL_INTERVAL_S,
)


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "configs"
MODEL_CACHE_DIR = PROJECT_ROOT / "model_cache"

DECODING_METHODS = ("greedy_search", "modified_beam_search")


@dataclass
class AudioConfig:
    """Audio hand-off configuration."""
    sample_rate: int = DEFAULT_SR
    max_buffer_s: float = DEFAULT_MAX_BUFFER_S

    @property
    def max_buffer_samples(self) -> int:
        return int(round(self.sample_rate * self.max_buffer_s))


@dataclass
class DecoderConfig:
    """Search configuration."""
    method: str = DEFAULT_METHOD
    num_active_paths: int = DEFAULT_NUM_ACTIVE_PATHS  # beam size for modified_beam_search
    enable_endpoint: bool = True
    # Chunking overrides; None means use the model's own values.
    segment_size: Optional[int] = None
    hop_size: Optional[int] = None

    @property
    def beam_size(self) -> int:
        return 1 if self.method == "greedy_search" else self.num_active_paths


@dataclass
class EndpointRuleConfig:
    """
    One endpoint rule.

    Fires when the utterance contains a decoded token (if required), the
    trailing silence is at least `min_trailing_silence` seconds, and the
    utterance is at least `min_utterance_length` seconds long.
    """
    must_contain_nonsilence: bool = True
    min_trailing_silence: float = 2.0
    min_utterance_length: float = 0.0


@dataclass
class EndpointConfig:
    """Three rules, evaluated disjunctively."""
    rule1: EndpointRuleConfig = field(default_factory=lambda: EndpointRuleConfig(
        must_contain_nonsilence=True,
        min_trailing_silence=DEFAULT_RULE1_MIN_TRAILING_SILENCE_S,
        min_utterance_length=0.0,
    ))
    rule2: EndpointRuleConfig = field(default_factory=lambda: EndpointRuleConfig(
        must_contain_nonsilence=True,
        min_trailing_silence=DEFAULT_RULE2_MIN_TRAILING_SILENCE_S,
        min_utterance_length=0.0,
    ))
    rule3: EndpointRuleConfig = field(default_factory=lambda: EndpointRuleConfig(
        must_contain_nonsilence=False,
        min_trailing_silence=0.0,
        min_utterance_length=DEFAULT_RULE3_MIN_UTTERANCE_LENGTH_S,
    ))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EndpointConfig":
        config = cls()
        for name in ("rule1", "rule2", "rule3"):
            if name in data:
                merged = asdict(getattr(config, name))
                merged.update(data[name])
                setattr(config, name, EndpointRuleConfig(**merged))
        return config


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class RealtimeConfig:
    """Decode loop configuration."""
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    reset_on_endpoint: bool = True


@dataclass
class StreamingConfig:
    """
    Complete decoder configuration.

    Can be loaded from YAML or constructed programmatically.
    """
    audio: AudioConfig = field(default_factory=AudioConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    endpoint: EndpointConfig = field(default_factory=EndpointConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "StreamingConfig":
        """Load configuration from YAML file."""
        yaml_path = Path(yaml_path)
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamingConfig":
        """Create configuration from dictionary."""
        config = cls()

        try:
            if "audio" in data:
                config.audio = AudioConfig(**data["audio"])
            if "decoder" in data:
                config.decoder = DecoderConfig(**data["decoder"])
            if "endpoint" in data:
                config.endpoint = EndpointConfig.from_dict(data["endpoint"])
            if "realtime" in data:
                config.realtime = RealtimeConfig(**data["realtime"])
            if "logging" in data:
                config.logging = LoggingConfig(**data["logging"])
        except TypeError as e:
            raise InvalidConfiguration(f"unknown configuration key: {e}") from e

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def save_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)

    def validate(self) -> "StreamingConfig":
        """Raise InvalidConfiguration on values the decoder cannot run with."""
        validate_audio_config(self.audio)
        validate_decoder_config(self.decoder)
        validate_endpoint_config(self.endpoint)
        if self.realtime.poll_interval_s <= 0:
            raise InvalidConfiguration("realtime.poll_interval_s must be positive")
        return self


def validate_audio_config(audio: AudioConfig) -> None:
    if audio.sample_rate <= 0:
        raise InvalidConfiguration("audio.sample_rate must be positive")
    if not audio.max_buffer_s > 0:
        raise InvalidConfiguration("audio.max_buffer_s must be positive")


def validate_decoder_config(decoder: DecoderConfig) -> None:
    if decoder.method not in DECODING_METHODS:
        raise InvalidConfiguration(
            f"decoder.method must be one of {DECODING_METHODS}, got {decoder.method!r}"
        )
    if decoder.num_active_paths <= 0:
        raise InvalidConfiguration(
            f"decoder.num_active_paths must be positive, got {decoder.num_active_paths}"
        )
    validate_chunking(decoder.segment_size, decoder.hop_size)


def validate_chunking(segment_size: Optional[int], hop_size: Optional[int]) -> None:
    if segment_size is not None and segment_size <= 0:
        raise InvalidConfiguration(f"segment_size must be positive, got {segment_size}")
    if hop_size is not None and hop_size <= 0:
        raise InvalidConfiguration(f"hop_size must be positive, got {hop_size}")
    if segment_size is not None and hop_size is not None and segment_size < hop_size:
        raise InvalidConfiguration(
            f"segment_size ({segment_size}) must be >= hop_size ({hop_size})"
        )


def validate_endpoint_config(endpoint: EndpointConfig) -> None:
    for name in ("rule1", "rule2", "rule3"):
        rule = getattr(endpoint, name)
        for attr in ("min_trailing_silence", "min_utterance_length"):
            value = getattr(rule, attr)
            if not isinstance(value, (int, float)) or math.isnan(value) or value < 0:
                raise InvalidConfiguration(
                    f"endpoint.{name}.{attr} must be a non-negative number, got {value!r}"
                )


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> StreamingConfig:
    """
    Load configuration with optional dotted-key overrides, then validate it.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "default.yaml"

    config_path = Path(config_path)

    if config_path.exists():
        config = StreamingConfig.from_yaml(config_path)
    else:
        config = StreamingConfig()

    if overrides:
        config = _apply_overrides(config, overrides)

    return config.validate()


def _apply_overrides(config: StreamingConfig, overrides: Dict[str, Any]) -> StreamingConfig:
    """Apply nested overrides to configuration."""
    for key, value in overrides.items():
        parts = key.split(".")
        obj = config
        for part in parts[:-1]:
            if not hasattr(obj, part):
                raise InvalidConfiguration(f"unknown configuration key: {key}")
            obj = getattr(obj, part)
        if not hasattr(obj, parts[-1]):
            raise InvalidConfiguration(f"unknown configuration key: {key}")
        setattr(obj, parts[-1], value)

    return config
