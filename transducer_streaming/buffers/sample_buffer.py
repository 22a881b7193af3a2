"""
Producer/consumer hand-off buffer between the audio thread and the decoder.

One producer calls push() from the audio callback; one consumer calls drain()
from the decode loop. Both hold the lock only for a bounded copy into or out of
a preallocated ring, never while decoding, so the producer's wait does not
depend on how far behind the decoder is.
"""

import threading
from dataclasses import dataclass

import numpy as np

from ..core.ringbuffer import RingBuffer
from ..core.types import DEFAULT_SR, DEFAULT_MAX_BUFFER_S, as_float32_mono


@dataclass(frozen=True)
class BufferCounters:
    """Cumulative counters since construction."""
    pushed_samples: int
    dropped_samples: int
    overflow_events: int


class SampleBuffer:
    """Bounded single-producer/single-consumer sample queue with drop-oldest overflow."""

    def __init__(self, capacity_samples: int):
        self._ring = RingBuffer(capacity_samples)
        self._lock = threading.Lock()
        self._pushed = 0
        self._dropped = 0
        self._overflows = 0

    @classmethod
    def for_duration(cls, max_seconds: float = DEFAULT_MAX_BUFFER_S, sample_rate: int = DEFAULT_SR) -> "SampleBuffer":
        return cls(max(1, int(round(max_seconds * sample_rate))))

    @property
    def capacity(self) -> int:
        return self._ring.capacity

    def push(self, samples: np.ndarray) -> None:
        """Append samples; on overflow the oldest samples are dropped. Never raises on overflow."""
        audio = as_float32_mono(samples)
        if audio.size == 0:
            return
        with self._lock:
            dropped = self._ring.append(audio)
            self._pushed += audio.size
            if dropped:
                self._dropped += dropped
                self._overflows += 1

    def drain(self) -> np.ndarray:
        """Remove and return every sample pushed since the previous drain."""
        with self._lock:
            return self._ring.drain()

    def counters(self) -> BufferCounters:
        with self._lock:
            return BufferCounters(
                pushed_samples=self._pushed,
                dropped_samples=self._dropped,
                overflow_events=self._overflows,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._ring)
