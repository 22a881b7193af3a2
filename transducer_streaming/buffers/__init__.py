"""Audio hand-off buffers."""

from .sample_buffer import BufferCounters, SampleBuffer

__all__ = [
    "BufferCounters",
    "SampleBuffer",
]
