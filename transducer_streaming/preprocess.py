"""
Waveform preprocessing ahead of feature extraction.

Converts incoming buffers to mono float32 at the feature extractor's rate.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Optional, Tuple

import numpy as np

from .core.types import as_float32_mono

_scipy_signal = None


def _get_scipy_signal():
    """Lazy import scipy.signal."""
    global _scipy_signal
    if _scipy_signal is None:
        from scipy import signal
        _scipy_signal = signal
    return _scipy_signal


def resample_ratio(source_sr: float, target_sr: float) -> Tuple[int, int]:
    """Reduced (up, down) integer factors mapping source_sr to target_sr."""
    if source_sr <= 0 or target_sr <= 0:
        raise ValueError(f"sample rates must be positive, got {source_sr} -> {target_sr}")
    ratio = Fraction(target_sr).limit_denominator(100000) / Fraction(source_sr).limit_denominator(100000)
    ratio = ratio.limit_denominator(1000)
    return ratio.numerator, ratio.denominator


def resample(audio: np.ndarray, source_sr: float, target_sr: float) -> np.ndarray:
    """Polyphase resampling; a no-op when the rates already match."""
    audio = as_float32_mono(audio)
    if source_sr == target_sr or audio.size == 0:
        return audio

    up, down = resample_ratio(source_sr, target_sr)
    signal = _get_scipy_signal()
    out = signal.resample_poly(audio, up, down)
    return out.astype(np.float32)


class Resampler:
    """
    Streaming polyphase resampler to `target_sr`.

    Keeps the filter history and output phase between calls, so feeding a
    signal in buffers of any size gives the same samples as feeding it in one
    call. Uses the anti-aliasing filter of `scipy.signal.resample_poly`, applied
    causally: the output lags the input by half the filter length (about a
    millisecond at speech rates) and that lag does not grow.
    """

    def __init__(self, target_sr: int):
        self.target_sr = target_sr
        self.source_sr: Optional[float] = None
        self._up = 1
        self._down = 1
        self._phases = np.ones((1, 1))
        self._history = np.zeros(0)
        self._consumed = 0
        self._produced = 0

    def _configure(self, source_sr: float) -> None:
        up, down = resample_ratio(source_sr, self.target_sr)
        signal = _get_scipy_signal()
        max_rate = max(up, down)
        half_len = 10 * max_rate
        taps = signal.firwin(2 * half_len + 1, 1.0 / max_rate, window=("kaiser", 5.0)) * up

        # Row p holds the taps hitting input samples i_max, i_max - 1, ...
        # for output samples whose upsampled index is p modulo `up`.
        num_taps = -(-len(taps) // up)
        padded = np.zeros(num_taps * up)
        padded[:len(taps)] = taps
        self._phases = padded.reshape(num_taps, up).T.copy()

        self.source_sr = source_sr
        self._up, self._down = up, down
        self._history = np.zeros(num_taps - 1)
        self._consumed = 0
        self._produced = 0

    def reset(self) -> None:
        """Forget buffered history; the next call starts a new stream."""
        self.source_sr = None

    def __call__(self, audio: np.ndarray, source_sr: float) -> np.ndarray:
        audio = as_float32_mono(audio)
        if source_sr == self.target_sr:
            return audio
        if source_sr != self.source_sr:
            self._configure(source_sr)
        if audio.size == 0:
            return audio

        up, down = self._up, self._down
        buf = np.concatenate([self._history, audio.astype(np.float64)])
        base = self._consumed - len(self._history)  # stream index of buf[0]
        total = self._consumed + audio.size

        # Output m needs input samples up to (m * down) // up.
        end = (total * up + down - 1) // down
        positions = np.arange(self._produced, end) * down
        newest = positions // up - base
        window = newest[:, None] - np.arange(self._phases.shape[1])[None, :]
        out = np.sum(self._phases[positions % up] * buf[window], axis=1)

        keep = self._phases.shape[1] - 1
        self._history = buf[len(buf) - keep:] if keep else buf[:0]
        self._consumed = total
        self._produced = end
        return out.astype(np.float32)
