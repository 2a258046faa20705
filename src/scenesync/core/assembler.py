"""
Feature vector assembly.

Reduces the per-pass time series to the fixed 44-slot vector the scene model
was trained on. The slot order is part of the model contract and must never
change.
"""

from dataclasses import dataclass
from typing import Iterator, Sequence, Union

import numpy as np

from scenesync.core.passes import N_CHROMA, N_CONTRAST_BANDS, N_MFCC, FeatureSeries
from scenesync.core.tempo import beat_count

FEATURE_NAMES: tuple[str, ...] = (
    # Basic audio properties
    "duration",
    "sample_rate",
    "tempo",
    "beat_count",
    # Energy
    "rms_mean",
    "rms_std",
    "rms_max",
    "zcr_mean",
    # Spectral shape
    "centroid_mean",
    "centroid_std",
    "rolloff_mean",
    "bandwidth_mean",
    *(f"mfcc_{i}" for i in range(N_MFCC)),
    *(f"contrast_{i}" for i in range(N_CONTRAST_BANDS)),
    *(f"chroma_{i}" for i in range(N_CHROMA)),
)

FEATURE_COUNT = len(FEATURE_NAMES)  # 44


@dataclass(frozen=True)
class FeatureTimeSeries:
    """All per-frame series from one extraction run."""

    rms: FeatureSeries
    zcr: FeatureSeries
    spectral_centroid: FeatureSeries
    spectral_rolloff: FeatureSeries
    spectral_spread: FeatureSeries
    mfcc: FeatureSeries               # 13 channels
    spectral_contrast: FeatureSeries  # 7 channels
    chroma: FeatureSeries             # 12 channels
    tempo: int
    sample_rate: int

    @classmethod
    def from_series(
        cls,
        series: dict[str, FeatureSeries],
        tempo: int,
        sample_rate: int,
    ) -> "FeatureTimeSeries":
        """Build from a ``{pass name: series}`` mapping."""
        return cls(tempo=tempo, sample_rate=sample_rate, **series)

    def scalar_series(self) -> dict[str, np.ndarray]:
        """The single-channel series, keyed by name (for charts and export)."""
        return {
            "rms": self.rms.values,
            "zcr": self.zcr.values,
            "spectral_centroid": self.spectral_centroid.values,
            "spectral_rolloff": self.spectral_rolloff.values,
            "spectral_spread": self.spectral_spread.values,
        }


class FeatureVector:
    """
    Immutable 44-element feature vector.

    Raises:
        ValueError: On construction with any length other than 44.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Union[np.ndarray, Sequence[float]]):
        data = np.array(values, dtype=np.float64).ravel()
        if len(data) != FEATURE_COUNT:
            raise ValueError(
                f"Feature vector must have {FEATURE_COUNT} elements, got {len(data)}"
            )
        data.setflags(write=False)
        self._values = data

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return FEATURE_COUNT

    def __iter__(self) -> Iterator[float]:
        return iter(self._values.tolist())

    def __getitem__(self, key: Union[int, str]) -> float:
        if isinstance(key, str):
            key = FEATURE_NAMES.index(key)
        return float(self._values[key])

    def __eq__(self, other) -> bool:
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    def __hash__(self) -> int:
        return hash(self._values.tobytes())

    def __repr__(self) -> str:
        return f"FeatureVector(tempo={self['tempo']:.0f}, rms_mean={self['rms_mean']:.4f}, ...)"

    def as_dict(self) -> dict[str, float]:
        return dict(zip(FEATURE_NAMES, self._values.tolist()))

    def to_list(self) -> list[float]:
        return self._values.tolist()


def assemble_feature_vector(time_series: FeatureTimeSeries, duration: float) -> FeatureVector:
    """
    Reduce time series to the 44-element feature vector.

    Args:
        time_series: Output of one extraction run.
        duration: Analyzed duration in seconds.

    Returns:
        FeatureVector in ``FEATURE_NAMES`` order.
    """
    ts = time_series
    values = [
        # 1. Basic audio properties (4)
        float(duration),
        float(ts.sample_rate),
        float(ts.tempo),
        float(beat_count(ts.tempo, duration)),
        # 2. Energy (4)
        ts.rms.mean()[0],
        ts.rms.std()[0],
        ts.rms.max()[0],
        ts.zcr.mean()[0],
        # 3. Spectral (4)
        ts.spectral_centroid.mean()[0],
        ts.spectral_centroid.std()[0],
        ts.spectral_rolloff.mean()[0],
        ts.spectral_spread.mean()[0],
        # 4-6. MFCC (13), contrast (7), chroma (12)
        *ts.mfcc.mean(),
        *ts.spectral_contrast.mean(),
        *ts.chroma.mean(),
    ]
    return FeatureVector(values)
