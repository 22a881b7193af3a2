"""
Chunked encoder driver.

Feeds the encoder fixed windows of `segment_size` feature frames that advance
by `hop_size`, so consecutive windows overlap by `segment_size - hop_size`
frames of look-ahead. The recurrent state returned by one call is handed to
the next one.
"""

import logging
from typing import Any, Optional

import numpy as np

from ..core.config import validate_chunking
from ..core.errors import DecoderStateError, ErrorCode, InsufficientFrames
from .interfaces import TransducerModel

logger = logging.getLogger(__name__)


class EncoderStepper:
    """Owns the pending feature frames and the encoder state of one stream."""

    def __init__(
        self,
        model: TransducerModel,
        segment_size: Optional[int] = None,
        hop_size: Optional[int] = None,
        feature_dim: Optional[int] = None,
    ):
        self.model = model
        self.segment_size = segment_size if segment_size is not None else model.segment_size
        self.hop_size = hop_size if hop_size is not None else model.hop_size
        validate_chunking(self.segment_size, self.hop_size)
        self.feature_dim = feature_dim

        self.state: Any = None
        self.pending = np.zeros((0, feature_dim or 0), dtype=np.float32)
        self.num_processed = 0
        self.num_steps = 0
        self._input_finished = False
        self._exhausted = False
        self.reset()

    @property
    def overlap(self) -> int:
        return self.segment_size - self.hop_size

    @property
    def num_pending(self) -> int:
        return int(self.pending.shape[0])

    @property
    def is_input_finished(self) -> bool:
        return self._input_finished

    @property
    def exhausted(self) -> bool:
        """True once the final padded chunk has been encoded."""
        return self._exhausted

    def accept_frames(self, frames: np.ndarray) -> None:
        frames = np.asarray(frames, dtype=np.float32)
        if frames.ndim != 2:
            raise ValueError(f"frames must be 2D (num_frames, feature_dim), got shape {frames.shape}")
        if frames.shape[0] == 0:
            return
        if self._input_finished:
            raise DecoderStateError(code=ErrorCode.INPUT_ALREADY_FINISHED)
        if self.num_pending == 0:
            self.pending = frames.copy()
        else:
            self.pending = np.concatenate([self.pending, frames], axis=0)

    def input_finished(self) -> None:
        self._input_finished = True

    def can_step(self) -> bool:
        if self._exhausted:
            return False
        if self.num_pending >= self.segment_size:
            return True
        return self._input_finished

    def step(self) -> np.ndarray:
        """
        Encode the next window and advance by `hop_size` frames.

        Returns:
            Encoder output, shape (num_output_frames, encoder_dim).

        Raises:
            InsufficientFrames: less than a full window is pending and input
                has not been finished.
            DecoderStateError: the final padded window was already encoded.
        """
        if self._exhausted:
            raise DecoderStateError(code=ErrorCode.STREAM_EXHAUSTED)

        if self.num_pending < self.segment_size:
            if not self._input_finished:
                raise InsufficientFrames(
                    f"need {self.segment_size} frames, have {self.num_pending}"
                )
            self._exhausted = True
            if self.num_pending == 0:
                # Nothing left that the encoder has not already emitted output for.
                return np.zeros((0, 0), dtype=np.float32)
            chunk = self._padded_tail()
        else:
            chunk = self.pending[:self.segment_size]

        embeddings, self.state = self.model.run_encoder(chunk, self.state)
        embeddings = np.asarray(embeddings, dtype=np.float32)
        if embeddings.ndim == 1:
            embeddings = embeddings[None, :]

        if self._exhausted:
            self.pending = self.pending[:0]
        else:
            self.pending = self.pending[self.hop_size:]
        self.num_processed += self.hop_size
        self.num_steps += 1

        logger.trace(
            "encoder step %d: %d output frames, %d frames pending",
            self.num_steps, embeddings.shape[0], self.num_pending,
        )
        return embeddings

    def _padded_tail(self) -> np.ndarray:
        chunk = np.zeros((self.segment_size, self.pending.shape[1]), dtype=np.float32)
        chunk[:self.num_pending] = self.pending
        logger.debug(
            "flushing %d pending frames with %d frames of padding",
            self.num_pending, self.segment_size - self.num_pending,
        )
        return chunk

    def reset(self) -> None:
        self.state = self.model.initial_encoder_state()
        self.pending = np.zeros((0, self.feature_dim or 0), dtype=np.float32)
        self.num_processed = 0
        self.num_steps = 0
        self._input_finished = False
        self._exhausted = False
