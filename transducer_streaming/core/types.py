"""
Core data types for the streaming transducer decoder.

Audio arrays are mono float32 in [-1, 1]. Feature frames are float32 arrays
of shape (num_frames, feature_dim). Frame indices in hypotheses are counted at
the encoder output frame rate.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Hypothesis:
    """One decoding path: emitted tokens and their cumulative log-probability."""
    tokens: Tuple[int, ...] = ()
    score: float = 0.0
    # Predictor embedding for context(...); None means it must be recomputed.
    decoder_out: Optional[np.ndarray] = field(default=None, compare=False, repr=False)
    timestamps: Tuple[int, ...] = field(default=(), compare=False)

    def context(self, context_size: int, blank_id: int) -> Tuple[int, ...]:
        """Trailing `context_size` tokens, left-padded with blank."""
        if context_size <= 0:
            return ()
        tail = self.tokens[-context_size:]
        pad = (blank_id,) * (context_size - len(tail))
        return pad + tail

    def extend_blank(self, log_prob: float) -> "Hypothesis":
        return Hypothesis(
            tokens=self.tokens,
            score=self.score + log_prob,
            decoder_out=self.decoder_out,
            timestamps=self.timestamps,
        )

    def extend_token(self, token: int, log_prob: float, frame_index: int) -> "Hypothesis":
        return Hypothesis(
            tokens=self.tokens + (token,),
            score=self.score + log_prob,
            decoder_out=None,
            timestamps=self.timestamps + (frame_index,),
        )

    def with_decoder_out(self, decoder_out: np.ndarray) -> "Hypothesis":
        return Hypothesis(
            tokens=self.tokens,
            score=self.score,
            decoder_out=decoder_out,
            timestamps=self.timestamps,
        )

    def with_score(self, score: float) -> "Hypothesis":
        return Hypothesis(
            tokens=self.tokens,
            score=score,
            decoder_out=self.decoder_out,
            timestamps=self.timestamps,
        )


@dataclass(frozen=True)
class RecognitionResult:
    """Snapshot of the current best hypothesis, rendered to text."""
    text: str = ""
    tokens: Tuple[int, ...] = ()
    timestamps: Tuple[float, ...] = ()  # seconds from the start of the utterance

    @property
    def is_empty(self) -> bool:
        return not self.text

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "tokens": list(self.tokens),
            "timestamps": list(self.timestamps),
        }


@dataclass(frozen=True)
class DecoderStats:
    """Counters describing a decoding session."""
    num_samples_received: int
    num_frames_processed: int
    num_encoder_steps: int
    dropped_samples: int
    overflow_events: int


def as_float32_mono(samples: Sequence[float]) -> np.ndarray:
    """Coerce an input buffer to a contiguous 1D float32 array."""
    audio = np.asarray(samples, dtype=np.float32)
    if audio.ndim != 1:
        raise ValueError("audio must be mono (1D array)")
    return np.ascontiguousarray(audio)


# Default constants
DEFAULT_SR = 16000
DEFAULT_MAX_BUFFER_S = 30.0

# Decoding defaults
DEFAULT_METHOD = "modified_beam_search"
DEFAULT_NUM_ACTIVE_PATHS = 4

# Endpoint defaults
DEFAULT_RULE1_MIN_TRAILING_SILENCE_S = 2.4
DEFAULT_RULE2_MIN_TRAILING_SILENCE_S = 1.2
DEFAULT_RULE3_MIN_UTTERANCE_LENGTH_S = 20.0

# Realtime loop defaults
DEFAULT_POLL_INTERVAL_S = 0.02
