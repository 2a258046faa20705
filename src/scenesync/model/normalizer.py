"""Feature standardization with scaler parameters computed at training time."""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

import numpy as np

from scenesync.core.assembler import FEATURE_COUNT, FeatureVector
from scenesync.errors import NormalizationError


@dataclass(frozen=True, eq=False)
class ScalerParams:
    """Per-feature mean and scale (standard deviation) from training."""

    mean: np.ndarray
    scale: np.ndarray

    def __post_init__(self):
        for name in ("mean", "scale"):
            arr = np.array(getattr(self, name), dtype=np.float64).ravel()
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScalerParams":
        """
        Build from a JSON mapping.

        Accepts ``{"mean": [...], "scale": [...]}``; ``"std"`` is accepted in
        place of ``"scale"``.

        Raises:
            ValueError: If keys are missing, lengths differ from the feature
                        count, or any scale is zero or non-finite.
        """
        if "mean" not in data:
            raise ValueError("scaler parameters missing 'mean'")
        scale = data.get("scale", data.get("std"))
        if scale is None:
            raise ValueError("scaler parameters missing 'scale'")

        params = cls(mean=data["mean"], scale=scale)
        params.check()
        if not np.all(np.isfinite(params.mean)):
            raise ValueError("scaler mean contains non-finite values")
        if not np.all(np.isfinite(params.scale)) or np.any(params.scale == 0):
            raise ValueError("scaler scale must be finite and non-zero")
        return params

    def check(self, n_features: int = FEATURE_COUNT) -> None:
        """
        Verify both arrays match the feature vector length.

        Raises:
            NormalizationError: On any length mismatch.
        """
        if len(self.mean) != n_features or len(self.scale) != n_features:
            raise NormalizationError(
                f"Scaler length mismatch: mean={len(self.mean)}, "
                f"scale={len(self.scale)}, expected {n_features}"
            )

    def to_dict(self) -> dict[str, list[float]]:
        return {"mean": self.mean.tolist(), "scale": self.scale.tolist()}


def normalize(
    features: Union[FeatureVector, np.ndarray, Sequence[float]],
    scaler: ScalerParams,
) -> np.ndarray:
    """
    Standardize a feature vector: ``(value - mean[i]) / scale[i]``.

    Args:
        features: 44-element feature vector.
        scaler: Scaler parameters.

    Returns:
        New 44-element float64 array.

    Raises:
        NormalizationError: If the vector or scaler arrays are not exactly
                            44 elements long.
    """
    values = features.values if isinstance(features, FeatureVector) else np.asarray(
        features, dtype=np.float64
    ).ravel()
    if len(values) != FEATURE_COUNT:
        raise NormalizationError(
            f"Feature length mismatch: got {len(values)}, expected {FEATURE_COUNT}"
        )
    scaler.check()
    return (values - scaler.mean) / scaler.scale
