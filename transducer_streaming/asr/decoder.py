"""
Streaming transducer decoder.

Glues the sample hand-off buffer, the feature extractor, the chunked encoder,
the search strategy and the endpoint detector into one per-utterance session.

Threading: accept_waveform() may be called from a real-time audio thread and
only touches the SampleBuffer. Every other method belongs to the single decode
thread.
"""

import logging
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np

from ..buffers.sample_buffer import SampleBuffer
from ..core.config import (
    AudioConfig,
    DecoderConfig,
    EndpointConfig,
    StreamingConfig,
    validate_audio_config,
    validate_decoder_config,
)
from ..core.errors import DecoderStateError, ErrorCode, format_error
from ..core.types import DecoderStats, RecognitionResult, as_float32_mono
from ..preprocess import Resampler
from .beam import HypothesisBeam
from .endpoint import EndpointDetector
from .interfaces import FeatureExtractor, SymbolTable, TransducerModel
from .search import create_search
from .stepper import EncoderStepper

logger = logging.getLogger(__name__)


class DecoderState(str, Enum):
    IDLE = "idle"
    ACCEPTING = "accepting"
    DECODING = "decoding"
    ENDPOINTED = "endpointed"
    FINISHING = "finishing"


class Decoder:
    """One streaming recognition session over a transducer model."""

    def __init__(
        self,
        model: TransducerModel,
        feature_extractor: FeatureExtractor,
        symbol_table: SymbolTable,
        decoder_config: Optional[DecoderConfig] = None,
        endpoint_config: Optional[EndpointConfig] = None,
        audio_config: Optional[AudioConfig] = None,
        resampler: Optional[Callable[[np.ndarray, float], np.ndarray]] = None,
    ):
        self.config = decoder_config or DecoderConfig()
        audio_config = audio_config or AudioConfig(sample_rate=feature_extractor.sample_rate)
        validate_decoder_config(self.config)
        validate_audio_config(audio_config)

        self.model = model
        self.feature_extractor = feature_extractor
        self.symbol_table = symbol_table
        self.search = create_search(self.config.method, self.config.num_active_paths)
        self.resampler = resampler or Resampler(feature_extractor.sample_rate)

        self.sample_buffer = SampleBuffer.for_duration(
            audio_config.max_buffer_s, feature_extractor.sample_rate
        )
        self.stepper = EncoderStepper(
            model,
            segment_size=self.config.segment_size,
            hop_size=self.config.hop_size,
            feature_dim=feature_extractor.feature_dim,
        )
        self.frame_duration = feature_extractor.frame_shift_seconds * model.subsampling_factor
        self.endpoint = EndpointDetector(endpoint_config, frame_duration=self.frame_duration)

        self.beam = HypothesisBeam.initial()
        self._frames_fetched = 0
        self._num_output_frames = 0
        self._result_prefix: tuple = ()
        self._input_finished = False
        self._features_flushed = False
        self._failed = False
        self._pushed_at_reset = 0
        self._dropped_seen = 0

        logger.info(
            "Decoder ready: method=%s beam=%d segment=%d hop=%d frame_duration=%.3fs",
            self.config.method, self.search.beam_size,
            self.stepper.segment_size, self.stepper.hop_size, self.frame_duration,
        )

    @classmethod
    def from_config(
        cls,
        model: TransducerModel,
        feature_extractor: FeatureExtractor,
        symbol_table: SymbolTable,
        config: StreamingConfig,
        resampler: Optional[Callable[[np.ndarray, float], np.ndarray]] = None,
    ) -> "Decoder":
        config.validate()
        return cls(
            model,
            feature_extractor,
            symbol_table,
            decoder_config=config.decoder,
            endpoint_config=config.endpoint,
            audio_config=config.audio,
            resampler=resampler,
        )

    # Producer side

    def accept_waveform(self, sample_rate: float, samples: np.ndarray) -> None:
        """Queue audio for decoding. Safe to call from the audio thread."""
        if self._input_finished:
            raise DecoderStateError(code=ErrorCode.INPUT_ALREADY_FINISHED)
        audio = as_float32_mono(samples)
        if sample_rate != self.feature_extractor.sample_rate:
            audio = self.resampler(audio, sample_rate)
        self.sample_buffer.push(audio)

    # Consumer side

    def input_finished(self) -> None:
        """No more audio will arrive; the next decode() flushes the tail."""
        self._input_finished = True

    def decode(self) -> None:
        """
        Decode every full chunk available so far.

        A no-op when less than one chunk is buffered. Any exception from the
        model collaborators is re-raised unchanged and leaves the session
        failed until reset().
        """
        if self._failed:
            raise DecoderStateError(code=ErrorCode.SESSION_FAILED)
        try:
            self._decode_available()
        except Exception:
            self._failed = True
            logger.error("Decoding failed; session must be reset", exc_info=True)
            raise

    def _decode_available(self) -> None:
        samples = self.sample_buffer.drain()
        self._report_overflow()
        if samples.size:
            if self._features_flushed:
                logger.warning("Discarding %d samples that arrived after input_finished()", samples.size)
            else:
                self.feature_extractor.accept_waveform(samples)

        if self._input_finished and not self._features_flushed:
            self.feature_extractor.input_finished()
            self._features_flushed = True

        self._fetch_frames()
        if self._features_flushed and not self.stepper.is_input_finished:
            self.stepper.input_finished()

        while self.stepper.can_step():
            encoder_out = self.stepper.step()
            for frame in encoder_out:
                self._decode_frame(frame)

    def _fetch_frames(self) -> None:
        ready = self.feature_extractor.num_frames_ready
        if ready <= self._frames_fetched:
            return
        frames = self.feature_extractor.get_frames(self._frames_fetched, ready - self._frames_fetched)
        self.stepper.accept_frames(frames)
        self._frames_fetched = ready

    def _decode_frame(self, frame: np.ndarray) -> None:
        before = self.beam.best().tokens
        self.beam = self.search.step(self.beam, self.model, frame, self._num_output_frames)
        self._num_output_frames += 1
        self.endpoint.update(emitted=self.beam.best().tokens != before)

    def _report_overflow(self) -> None:
        counters = self.sample_buffer.counters()
        if counters.dropped_samples > self._dropped_seen:
            logger.warning(
                "%s (%d samples since last decode, %d overflow events total)",
                format_error(ErrorCode.BUFFER_OVERFLOW),
                counters.dropped_samples - self._dropped_seen,
                counters.overflow_events,
            )
            self._dropped_seen = counters.dropped_samples

    def _visible(self) -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
        """
        Tokens and frame indices of the best path not hidden by reset_result().

        If the best path no longer starts with the hidden prefix, only the part
        it still shares with that prefix is hidden.
        """
        best = self.beam.best()
        prefix = self._result_prefix
        shared = 0
        for ours, hidden in zip(best.tokens, prefix):
            if ours != hidden:
                break
            shared += 1
        return best.tokens[shared:], best.timestamps[shared:]

    def get_result(self) -> RecognitionResult:
        """Render the best hypothesis. Read-only."""
        tokens, timestamps = self._visible()
        return RecognitionResult(
            text=self.symbol_table.decode(tokens),
            tokens=tokens,
            timestamps=tuple(t * self.frame_duration for t in timestamps),
        )

    def reset_result(self) -> None:
        """Hide tokens decoded so far from get_result(); the search state is kept."""
        self._result_prefix = self.beam.best().tokens

    def is_endpoint(self) -> bool:
        if not self.config.enable_endpoint:
            return False
        return self.endpoint.is_endpoint(contains_nonsilence=bool(self._visible()[0]))

    def reset(self) -> None:
        """Start a new utterance: fresh beam, encoder state, frames and counters."""
        rule = None
        if self.config.enable_endpoint:
            rule = self.endpoint.triggered_rule(bool(self._visible()[0]))
        logger.debug(
            "Reset after %d output frames (endpoint rule: %s)",
            self._num_output_frames, rule.name if rule else None,
        )

        self.beam = HypothesisBeam.initial()
        self.stepper.reset()
        self.endpoint.reset()
        self.feature_extractor.reset()
        self._frames_fetched = 0
        self._num_output_frames = 0
        self._result_prefix = ()
        self._input_finished = False
        self._features_flushed = False
        self._failed = False
        self._pushed_at_reset = self.sample_buffer.counters().pushed_samples

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def state(self) -> DecoderState:
        if self._input_finished:
            return DecoderState.FINISHING
        if self.is_endpoint():
            return DecoderState.ENDPOINTED
        if self._num_output_frames > 0 or self._frames_fetched > 0:
            return DecoderState.DECODING
        if self.sample_buffer.counters().pushed_samples > self._pushed_at_reset:
            return DecoderState.ACCEPTING
        return DecoderState.IDLE

    @property
    def stats(self) -> DecoderStats:
        counters = self.sample_buffer.counters()
        return DecoderStats(
            num_samples_received=counters.pushed_samples,
            num_frames_processed=self.stepper.num_processed,
            num_encoder_steps=self.stepper.num_steps,
            dropped_samples=counters.dropped_samples,
            overflow_events=counters.overflow_events,
        )
