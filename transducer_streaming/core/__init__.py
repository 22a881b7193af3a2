"""Core types, configuration, errors and logging."""

from .types import (
    Hypothesis,
    RecognitionResult,
    DecoderStats,
    DEFAULT_SR,
)
from .config import (
    AudioConfig,
    DecoderConfig,
    EndpointRuleConfig,
    EndpointConfig,
    LoggingConfig,
    RealtimeConfig,
    StreamingConfig,
    load_config,
)
from .errors import (
    ErrorCode,
    StreamingError,
    InsufficientFrames,
    InvalidConfiguration,
    ModelInferenceFailure,
    DecoderStateError,
)
from .logger import configure_logging, shutdown_logging
from .ringbuffer import RingBuffer

__all__ = [
    "Hypothesis",
    "RecognitionResult",
    "DecoderStats",
    "DEFAULT_SR",
    "AudioConfig",
    "DecoderConfig",
    "EndpointRuleConfig",
    "EndpointConfig",
    "LoggingConfig",
    "RealtimeConfig",
    "StreamingConfig",
    "load_config",
    "ErrorCode",
    "StreamingError",
    "InsufficientFrames",
    "InvalidConfiguration",
    "ModelInferenceFailure",
    "DecoderStateError",
    "configure_logging",
    "shutdown_logging",
    "RingBuffer",
]
