"""
Decoded audio signal container.

An ``AudioSignal`` is what the external decoder hands the pipeline: a mono
sample array, its sample rate and its duration. The sample buffer is
read-only, and ownership can be moved into a worker with ``transfer()`` so the
submitting code cannot observe the buffer while extraction runs.
"""

import math
from typing import Optional, Sequence, Union

import numpy as np

from scenesync.errors import DecodeError, ExtractionError

_CORRUPT = "Audio file appears to be empty or corrupted."


class SignalReleasedError(ExtractionError):
    """Raised when a signal handle is used after its buffer was transferred."""

    retryable = False
    default_user_message = "This audio was already analyzed. Please load the file again."


class AudioSignal:
    """
    Immutable mono audio buffer.

    The constructor always copies ``samples`` into a private float32 array,
    so two signals never share memory with each other or with the caller.
    """

    __slots__ = ("_samples", "sample_rate", "duration")

    def __init__(
        self,
        samples: Union[np.ndarray, Sequence[float]],
        sample_rate: int,
        duration: Optional[float] = None,
    ):
        """
        Initialize the signal.

        Args:
            samples: Mono samples, nominally in [-1, 1].
            sample_rate: Sample rate in Hz.
            duration: Duration in seconds. Derived from the sample count
                      when omitted.
        """
        data = np.array(samples, dtype=np.float32).ravel()
        data.setflags(write=False)
        self._samples: Optional[np.ndarray] = data
        self.sample_rate = int(sample_rate)
        self.duration = (
            float(duration)
            if duration is not None
            else (len(data) / self.sample_rate if self.sample_rate > 0 else 0.0)
        )

    @classmethod
    def from_decoder(
        cls,
        samples: Union[np.ndarray, Sequence[float]],
        sample_rate: int,
        duration: float,
    ) -> "AudioSignal":
        """
        Build a signal from decoder output, validating it first.

        Raises:
            DecodeError: If the signal is empty, the sample rate is not
                         positive, or the duration is zero or non-finite.
        """
        if sample_rate is None:
            raise DecodeError("Invalid sample rate: None")
        if duration is None:
            raise DecodeError(_CORRUPT)
        return cls(samples, sample_rate, duration).validate()

    def validate(self) -> "AudioSignal":
        """
        Check that the signal can be analyzed at all.

        Returns:
            self, for chaining.

        Raises:
            DecodeError: If the signal is empty, the sample rate is not
                         positive, or the duration is zero or non-finite.
            SignalReleasedError: If the buffer was already transferred.
        """
        if self.sample_rate <= 0:
            raise DecodeError(f"Invalid sample rate: {self.sample_rate}")
        if not math.isfinite(self.duration) or self.duration <= 0:
            raise DecodeError(_CORRUPT)
        if self.n_samples == 0:
            raise DecodeError(_CORRUPT)
        return self

    @property
    def samples(self) -> np.ndarray:
        """Read-only sample buffer."""
        if self._samples is None:
            raise SignalReleasedError(
                "Signal buffer was transferred to an extraction worker"
            )
        return self._samples

    @property
    def n_samples(self) -> int:
        """Total number of samples in the signal."""
        return len(self.samples)

    @property
    def released(self) -> bool:
        return self._samples is None

    def transfer(self) -> "AudioSignal":
        """
        Move the buffer into a new handle and release this one.

        Returns:
            A signal that now exclusively owns the sample buffer.
        """
        moved = AudioSignal.__new__(AudioSignal)
        moved._samples = self.samples
        moved.sample_rate = self.sample_rate
        moved.duration = self.duration
        self._samples = None
        return moved

    def truncated(self, max_duration: Optional[float]) -> "AudioSignal":
        """
        Limit the signal to its first ``max_duration`` seconds.

        Returns ``self`` when no truncation is needed.
        """
        if max_duration is None or self.duration <= max_duration:
            return self
        n_keep = int(math.floor(max_duration * self.sample_rate))
        return AudioSignal(self.samples[:n_keep], self.sample_rate, max_duration)

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.n_samples} samples"
        return (
            f"AudioSignal({state}, sample_rate={self.sample_rate}, "
            f"duration={self.duration:.3f})"
        )
