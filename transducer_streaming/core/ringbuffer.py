"""
Fixed-capacity FIFO of float32 samples.

Storage is allocated once. Writes past capacity overwrite the oldest unread
samples; reads always take everything that is buffered.
"""

import numpy as np


class RingBuffer:
    """Sample FIFO over a preallocated circular array."""

    def __init__(self, capacity_samples: int):
        if capacity_samples <= 0:
            raise ValueError("capacity_samples must be positive")
        self.capacity = capacity_samples
        self._store = np.zeros(capacity_samples, dtype=np.float32)
        self._head = 0  # index of the oldest unread sample
        self._count = 0

    def append(self, x: np.ndarray) -> int:
        """
        Write samples after the newest one.

        Returns:
            How many samples (buffered or incoming) were lost to overflow.
        """
        x = np.asarray(x, dtype=np.float32)
        n = len(x)
        lost = max(0, self._count + n - self.capacity)
        if n == 0:
            return 0

        if n > self.capacity:
            x = x[-self.capacity:]
            n = self.capacity

        tail = (self._head + self._count) % self.capacity
        self._store[(tail + np.arange(n)) % self.capacity] = x

        if lost:
            # Full: the oldest sample is the one right after the newest.
            self._head = (tail + n) % self.capacity
        self._count = min(self._count + n, self.capacity)
        return lost

    def drain(self) -> np.ndarray:
        """Return every buffered sample, oldest first, and empty the buffer."""
        idx = (self._head + np.arange(self._count)) % self.capacity
        out = self._store[idx]
        self.clear()
        return out

    def clear(self) -> None:
        self._head = 0
        self._count = 0

    def __len__(self) -> int:
        return self._count
