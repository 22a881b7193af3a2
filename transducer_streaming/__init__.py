"""Streaming transducer decoding with endpoint detection."""

from . import core
from . import buffers
from . import asr
from . import preprocess
from .asr import Decoder, DecoderState
from .core import (
    StreamingConfig,
    RecognitionResult,
    load_config,
    configure_logging,
)
from .realtime import (
    SegmentUpdate,
    DecodeLoop,
    WaveformFeeder,
    recognize_waveform,
)

__all__ = [
    "core",
    "buffers",
    "asr",
    "preprocess",
    "Decoder",
    "DecoderState",
    "StreamingConfig",
    "RecognitionResult",
    "load_config",
    "configure_logging",
    "SegmentUpdate",
    "DecodeLoop",
    "WaveformFeeder",
    "recognize_waveform",
]
