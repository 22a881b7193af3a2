"""
Collaborator interfaces consumed by the decoder.

Feature extraction, the network forward passes and token rendering live
outside the decoding core; these abstract classes pin down what the core
expects from them.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence, Tuple

import numpy as np


class FeatureExtractor(ABC):
    """Turns waveform samples into a growing sequence of feature frames."""

    sample_rate: int = 16000
    feature_dim: int = 80
    frame_shift_seconds: float = 0.01

    @abstractmethod
    def accept_waveform(self, samples: np.ndarray) -> None:
        """Append samples at `sample_rate`; new frames become available."""
        raise NotImplementedError()

    @abstractmethod
    def input_finished(self) -> None:
        """Flush any partial trailing frame."""
        raise NotImplementedError()

    @property
    @abstractmethod
    def num_frames_ready(self) -> int:
        """Total number of frames computed since the last reset."""
        raise NotImplementedError()

    @abstractmethod
    def get_frames(self, start: int, count: int) -> np.ndarray:
        """Return frames [start, start + count) as (count, feature_dim) float32."""
        raise NotImplementedError()

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError()


class TransducerModel(ABC):
    """Encoder / predictor / joiner of a streaming transducer.

    All three calls must be free of side effects given their inputs.
    """

    blank_id: int = 0
    context_size: int = 2
    # Feature frames consumed per encoder call, and how far each call advances.
    segment_size: int = 39
    hop_size: int = 32
    subsampling_factor: int = 4

    @abstractmethod
    def initial_encoder_state(self) -> Any:
        raise NotImplementedError()

    @abstractmethod
    def run_encoder(self, frames: np.ndarray, state: Any) -> Tuple[np.ndarray, Any]:
        """Encode (segment_size, feature_dim) frames; returns (num_out, dim) and the next state."""
        raise NotImplementedError()

    @abstractmethod
    def run_predictor(self, context: Sequence[int]) -> np.ndarray:
        """Embedding for the trailing `context_size` tokens."""
        raise NotImplementedError()

    @abstractmethod
    def run_joiner(self, decoder_out: np.ndarray, encoder_out: np.ndarray) -> np.ndarray:
        """Log-probabilities over the vocabulary, shape (vocab_size,)."""
        raise NotImplementedError()


class SymbolTable(ABC):
    """Renders token ids to text."""

    @abstractmethod
    def decode(self, tokens: Sequence[int]) -> str:
        raise NotImplementedError()
