"""
Real-time streaming recognition with two threads.

Thread 1 (producer): pushes audio into Decoder.accept_waveform, e.g. from a
    sound-card callback, or WaveformFeeder for recorded audio.
Thread 2 (DecodeLoop): polls decode() -> is_endpoint() -> get_result() and
    publishes SegmentUpdates; resets the decoder at each endpoint.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from .asr.decoder import Decoder
from .core.config import RealtimeConfig
from .core.types import as_float32_mono

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentUpdate:
    """Text of one segment; `is_final` marks the last update for that segment."""
    segment_index: int
    text: str
    is_final: bool
    timestamp: float


class DecodeLoop:
    """Consumer side of the decoder: decode, detect endpoints, publish text."""

    def __init__(
        self,
        decoder: Decoder,
        config: Optional[RealtimeConfig] = None,
        on_update: Optional[Callable[[SegmentUpdate], None]] = None,
    ):
        self.decoder = decoder
        self.config = config or RealtimeConfig()
        self.on_update = on_update

        self.running = False
        self.thread: Optional[threading.Thread] = None

        self.segment_index = 0
        self.sentences: List[str] = []
        self.last_text = ""
        self.num_polls = 0
        self.num_failures = 0

    def run_once(self) -> List[SegmentUpdate]:
        """One poll: decode what is buffered and publish any changes."""
        self.num_polls += 1
        self.decoder.decode()

        is_endpoint = self.decoder.is_endpoint()
        text = self.decoder.get_result().text

        updates = []
        if text and text != self.last_text:
            self.last_text = text
            updates.append(self._update(text, is_final=False))

        if is_endpoint:
            if text:
                updates.append(self._finalize(text))
            if self.config.reset_on_endpoint:
                self.decoder.reset()

        for update in updates:
            self._publish(update)
        return updates

    def finish(self) -> List[SegmentUpdate]:
        """Flush the decoder after the producer is done and finalize the last segment."""
        self.decoder.input_finished()
        updates = self.run_once()
        text = self.decoder.get_result().text
        if text and not (updates and updates[-1].is_final):
            final = self._finalize(text)
            self._publish(final)
            updates.append(final)
        return updates

    def _update(self, text: str, is_final: bool) -> SegmentUpdate:
        return SegmentUpdate(
            segment_index=self.segment_index,
            text=text,
            is_final=is_final,
            timestamp=time.time(),
        )

    def _finalize(self, text: str) -> SegmentUpdate:
        update = self._update(text, is_final=True)
        logger.info("Segment %d: %s", self.segment_index, text)
        self.sentences.append(text)
        self.segment_index += 1
        self.last_text = ""
        return update

    def _publish(self, update: SegmentUpdate) -> None:
        if self.on_update:
            self.on_update(update)

    def _loop(self):
        logger.info("Decode loop started (poll every %.0f ms)", self.config.poll_interval_s * 1000)
        while self.running:
            try:
                self.run_once()
            except Exception:
                self.num_failures += 1
                logger.error("Decode failed; resetting session", exc_info=True)
                self.last_text = ""
                self.decoder.reset()
            time.sleep(self.config.poll_interval_s)
        logger.info("Decode loop stopped. Polls: %d, segments: %d", self.num_polls, self.segment_index)

    def start(self):
        self.running = True
        self.thread = threading.Thread(target=self._loop, daemon=True)
        self.thread.start()

    def stop(self):
        self.running = False
        if self.thread:
            self.thread.join(timeout=5.0)


class WaveformFeeder:
    """Producer that plays a recorded waveform into a decoder in fixed-size buffers."""

    def __init__(
        self,
        decoder: Decoder,
        samples: np.ndarray,
        sample_rate: int,
        buffer_samples: int = 1600,
        realtime_factor: float = 1.0,
    ):
        self.decoder = decoder
        self.samples = as_float32_mono(samples)
        self.sample_rate = sample_rate
        self.buffer_samples = buffer_samples
        self.realtime_factor = realtime_factor

        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.samples_fed = 0

    def _feed_loop(self):
        delay = self.buffer_samples / self.sample_rate * self.realtime_factor
        for start in range(0, len(self.samples), self.buffer_samples):
            if not self.running:
                break
            chunk = self.samples[start:start + self.buffer_samples]
            self.decoder.accept_waveform(self.sample_rate, chunk)
            self.samples_fed += len(chunk)
            if delay > 0:
                time.sleep(delay)
        self.running = False

    def start(self):
        self.running = True
        self.thread = threading.Thread(target=self._feed_loop, daemon=True)
        self.thread.start()

    def join(self, timeout: Optional[float] = None):
        if self.thread:
            self.thread.join(timeout=timeout)

    def stop(self):
        self.running = False
        self.join(timeout=2.0)


def recognize_waveform(
    decoder: Decoder,
    samples: np.ndarray,
    sample_rate: int,
    buffer_samples: int = 1600,
    config: Optional[RealtimeConfig] = None,
) -> List[str]:
    """Run a whole recording through the decoder synchronously; returns segment texts."""
    loop = DecodeLoop(decoder, config=config)
    audio = as_float32_mono(samples)
    for start in range(0, len(audio), buffer_samples):
        decoder.accept_waveform(sample_rate, audio[start:start + buffer_samples])
        loop.run_once()
    loop.finish()
    return list(loop.sentences)
