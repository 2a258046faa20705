"""
Frame iteration over a mono signal.

Frames are fixed 2048-sample windows advanced by 512 samples. The trailing
partial frame is dropped, so a signal of N samples yields
``(N - 2048) // 512 + 1`` frames, or none at all when N < 2048.
"""

from functools import cached_property
from typing import Iterator

import librosa
import numpy as np
from scipy import signal as scipy_signal

FRAME_SIZE = 2048
HOP_SIZE = 512


def frame_count(n_samples: int, frame_size: int = FRAME_SIZE, hop_size: int = HOP_SIZE) -> int:
    """Number of full frames that fit in ``n_samples``."""
    if n_samples < frame_size:
        return 0
    return (n_samples - frame_size) // hop_size + 1


class FrameIterator:
    """
    Lazy, restartable sequence of overlapping frame views.

    Iterating yields 1-D read-only views into the signal; ``matrix`` exposes
    all frames at once as a strided ``(frame_size, n_frames)`` view. Neither
    copies sample data.
    """

    def __init__(
        self,
        samples: np.ndarray,
        frame_size: int = FRAME_SIZE,
        hop_size: int = HOP_SIZE,
    ):
        if frame_size <= 0 or hop_size <= 0:
            raise ValueError("frame_size and hop_size must be positive")
        self.samples = np.ascontiguousarray(samples)
        self.frame_size = frame_size
        self.hop_size = hop_size

    def __len__(self) -> int:
        return frame_count(len(self.samples), self.frame_size, self.hop_size)

    def __iter__(self) -> Iterator[np.ndarray]:
        for i in range(len(self)):
            start = i * self.hop_size
            yield self.samples[start:start + self.frame_size]

    @cached_property
    def matrix(self) -> np.ndarray:
        """All frames as columns, shape ``(frame_size, n_frames)``."""
        if len(self) == 0:
            return np.zeros((self.frame_size, 0), dtype=self.samples.dtype)
        return librosa.util.frame(
            self.samples,
            frame_length=self.frame_size,
            hop_length=self.hop_size,
        )

    @cached_property
    def magnitude_spectrum(self) -> np.ndarray:
        """
        Hann-windowed magnitude spectrum of every frame.

        Returns:
            Array of shape ``(frame_size // 2 + 1, n_frames)``.
        """
        window = scipy_signal.get_window("hann", self.frame_size, fftbins=True)
        windowed = self.matrix * window[:, np.newaxis]
        return np.abs(np.fft.rfft(windowed, axis=0))

    @property
    def power_spectrum(self) -> np.ndarray:
        return self.magnitude_spectrum ** 2
