"""
Per-frame feature passes.

Eight independent passes each turn the frame sequence into one series:
energy, zero-crossing rate, spectral centroid, spectral rolloff, spectral
spread, MFCC (13 channels), spectral contrast (7 channels) and chroma
(12 channels).

Non-finite per-frame values are dropped from their channel; a channel left
with no values becomes ``[0.0]`` so downstream statistics are always defined.
"""

import logging
from dataclasses import dataclass
from typing import Callable

import librosa
import numpy as np

from scenesync.core.frames import FrameIterator

logger = logging.getLogger(__name__)

N_MFCC = 13
N_CONTRAST_BANDS = 7
N_CHROMA = 12

# Offset between consecutive contrast bands (see _spectral_contrast)
CONTRAST_BAND_STEP = 0.1


@dataclass(frozen=True, eq=False)
class FeatureSeries:
    """Per-frame values produced by one pass, one array per channel."""

    name: str
    channels: tuple[np.ndarray, ...]

    def __post_init__(self):
        for channel in self.channels:
            channel.setflags(write=False)

    @classmethod
    def fallback(cls, name: str, n_channels: int = 1) -> "FeatureSeries":
        """Series used when a pass produced no valid frames."""
        return cls(name, tuple(np.zeros(1) for _ in range(n_channels)))

    @property
    def n_channels(self) -> int:
        return len(self.channels)

    @property
    def values(self) -> np.ndarray:
        """The single channel of a scalar series."""
        if self.n_channels != 1:
            raise ValueError(f"{self.name} has {self.n_channels} channels")
        return self.channels[0]

    def __len__(self) -> int:
        return max(len(c) for c in self.channels)

    def mean(self) -> np.ndarray:
        return np.array([float(np.mean(c)) for c in self.channels])

    def std(self) -> np.ndarray:
        """Population standard deviation per channel."""
        return np.array([float(np.std(c)) for c in self.channels])

    def max(self) -> np.ndarray:
        return np.array([float(np.max(c)) for c in self.channels])


def _finite_or_fallback(values: np.ndarray) -> np.ndarray:
    kept = values[np.isfinite(values)]
    if len(kept) == 0:
        return np.zeros(1)
    return np.array(kept, dtype=np.float64)


# ---------------------------------------------------------------------------
# Per-frame computations
# ---------------------------------------------------------------------------

def _rms(frames: FrameIterator, sr: int) -> np.ndarray:
    x = frames.matrix.astype(np.float64)
    return np.sqrt(np.mean(x ** 2, axis=0))


def _zero_crossing_rate(frames: FrameIterator, sr: int) -> np.ndarray:
    crossings = librosa.zero_crossings(frames.matrix, pad=False, axis=0)
    return np.mean(crossings, axis=0)


def _spectral_centroid(frames: FrameIterator, sr: int) -> np.ndarray:
    return librosa.feature.spectral_centroid(
        S=frames.magnitude_spectrum,
        sr=sr,
        n_fft=frames.frame_size,
    )[0]


def _spectral_rolloff(frames: FrameIterator, sr: int) -> np.ndarray:
    return librosa.feature.spectral_rolloff(
        S=frames.magnitude_spectrum,
        sr=sr,
        n_fft=frames.frame_size,
        roll_percent=0.85,
    )[0]


def _spectral_spread(frames: FrameIterator, sr: int) -> np.ndarray:
    return librosa.feature.spectral_bandwidth(
        S=frames.magnitude_spectrum,
        sr=sr,
        n_fft=frames.frame_size,
    )[0]


def _mfcc(frames: FrameIterator, sr: int) -> np.ndarray:
    mel = librosa.feature.melspectrogram(S=frames.power_spectrum, sr=sr)
    # top_db=None keeps each frame independent of the loudest frame
    log_mel = librosa.power_to_db(mel, top_db=None)
    return librosa.feature.mfcc(S=log_mel, n_mfcc=N_MFCC)


def _spectral_contrast(frames: FrameIterator, sr: int) -> np.ndarray:
    # Approximation: a single flatness value offset per band. The trained
    # scaler/model pair expects exactly this, not true multi-band contrast.
    flatness = librosa.feature.spectral_flatness(S=frames.magnitude_spectrum)[0]
    offsets = CONTRAST_BAND_STEP * np.arange(N_CONTRAST_BANDS)
    return flatness[np.newaxis, :] + offsets[:, np.newaxis]


def _chroma(frames: FrameIterator, sr: int) -> np.ndarray:
    return librosa.feature.chroma_stft(
        S=frames.power_spectrum,
        sr=sr,
        tuning=0.0,
        n_chroma=N_CHROMA,
    )


# ---------------------------------------------------------------------------
# Pass definitions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeaturePass:
    """
    One feature pass over the frame sequence.

    ``compute`` maps the frames to an array of shape ``(n_frames,)`` or
    ``(n_channels, n_frames)``; ``run`` applies the non-finite/empty policy.
    """

    name: str
    stage: str          # progress label shown while the pass runs
    progress: int       # local progress [0, 100] reported before the pass
    n_channels: int
    compute: Callable[[FrameIterator, int], np.ndarray]

    def run(self, frames: FrameIterator, sample_rate: int) -> FeatureSeries:
        """
        Run the pass.

        Args:
            frames: Frame sequence of the signal.
            sample_rate: Sample rate in Hz.

        Returns:
            FeatureSeries with ``n_channels`` channels.
        """
        if len(frames) == 0:
            logger.debug("%s: no full frames, using fallback series", self.name)
            return FeatureSeries.fallback(self.name, self.n_channels)

        values = np.atleast_2d(np.asarray(self.compute(frames, sample_rate), dtype=np.float64))
        if values.shape[0] != self.n_channels:
            raise ValueError(
                f"{self.name} produced {values.shape[0]} channels, expected {self.n_channels}"
            )

        n_dropped = int(np.count_nonzero(~np.isfinite(values)))
        if n_dropped:
            logger.debug("%s: dropped %d non-finite values", self.name, n_dropped)

        return FeatureSeries(
            self.name,
            tuple(_finite_or_fallback(row) for row in values),
        )


RMS = FeaturePass("rms", "Analyzing energy...", 0, 1, _rms)
ZCR = FeaturePass("zcr", "Analyzing texture...", 14, 1, _zero_crossing_rate)
SPECTRAL_CENTROID = FeaturePass(
    "spectral_centroid", "Analyzing brightness...", 28, 1, _spectral_centroid
)
SPECTRAL_ROLLOFF = FeaturePass(
    "spectral_rolloff", "Analyzing frequency shape...", 42, 1, _spectral_rolloff
)
SPECTRAL_SPREAD = FeaturePass(
    "spectral_spread", "Analyzing spectral spread...", 56, 1, _spectral_spread
)
MFCC = FeaturePass("mfcc", "Analyzing timbre...", 64, N_MFCC, _mfcc)
SPECTRAL_CONTRAST = FeaturePass(
    "spectral_contrast", "Analyzing harmonic contrast...", 78, N_CONTRAST_BANDS, _spectral_contrast
)
CHROMA = FeaturePass("chroma", "Analyzing pitch content...", 88, N_CHROMA, _chroma)

# Execution order; progress values must be strictly increasing
FEATURE_PASSES: tuple[FeaturePass, ...] = (
    RMS,
    ZCR,
    SPECTRAL_CENTROID,
    SPECTRAL_ROLLOFF,
    SPECTRAL_SPREAD,
    MFCC,
    SPECTRAL_CONTRAST,
    CHROMA,
)
