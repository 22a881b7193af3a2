"""Centralized error codes for the streaming decoder."""

from __future__ import annotations

from enum import Enum
from typing import Final, Optional


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced in exceptions and logs."""

    # stream (ERR100x)
    INSUFFICIENT_FRAMES = "ERR1001"
    BUFFER_OVERFLOW = "ERR1002"
    STREAM_EXHAUSTED = "ERR1003"
    INPUT_ALREADY_FINISHED = "ERR1004"
    SESSION_FAILED = "ERR1005"

    # configuration (ERR200x)
    INVALID_CONFIGURATION = "ERR2001"

    # model (ERR300x)
    MODEL_INFERENCE_FAILED = "ERR3001"
    MODEL_FILES_MISSING = "ERR3002"


ERROR_MESSAGES: Final[dict[ErrorCode, str]] = {
    ErrorCode.INSUFFICIENT_FRAMES: "not enough feature frames for a full chunk",
    ErrorCode.BUFFER_OVERFLOW: "sample buffer ceiling exceeded; oldest audio dropped",
    ErrorCode.STREAM_EXHAUSTED: "stream already flushed; no further encoder steps",
    ErrorCode.INPUT_ALREADY_FINISHED: "input finished; waveform no longer accepted",
    ErrorCode.SESSION_FAILED: "session failed; reset() required",
    ErrorCode.INVALID_CONFIGURATION: "invalid configuration",
    ErrorCode.MODEL_INFERENCE_FAILED: "model inference failed",
    ErrorCode.MODEL_FILES_MISSING: "model files not found",
}


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """Format an error code and optional detail into a message."""
    message = detail if detail else ERROR_MESSAGES[code]
    return f"{code.value} {message}"


class StreamingError(RuntimeError):
    """Base class for errors raised by the decoder core."""

    code: ErrorCode = ErrorCode.SESSION_FAILED

    def __init__(self, detail: Optional[str] = None, code: Optional[ErrorCode] = None) -> None:
        if code is not None:
            self.code = code
        self.detail = detail or ERROR_MESSAGES[self.code]
        super().__init__(format_error(self.code, detail))


class InsufficientFrames(StreamingError):
    """Fewer than one chunk of frames is buffered; wait for more audio."""

    code = ErrorCode.INSUFFICIENT_FRAMES


class InvalidConfiguration(StreamingError, ValueError):
    """Configuration rejected at construction time."""

    code = ErrorCode.INVALID_CONFIGURATION


class ModelInferenceFailure(StreamingError):
    """A model collaborator failed; the current session must be reset."""

    code = ErrorCode.MODEL_INFERENCE_FAILED


class DecoderStateError(StreamingError):
    """Operation not permitted in the decoder's current state."""


__all__ = [
    "ErrorCode",
    "ERROR_MESSAGES",
    "StreamingError",
    "InsufficientFrames",
    "InvalidConfiguration",
    "ModelInferenceFailure",
    "DecoderStateError",
    "format_error",
]
