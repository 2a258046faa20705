"""Pipeline configuration.

Frame geometry is fixed by the trained model (see ``scenesync.core.frames``);
everything here is coordinator policy that callers may tune.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PipelineConfig:
    """Analysis pipeline parameters."""

    # Only the first max_duration seconds are analyzed (None = whole signal)
    max_duration: Optional[float] = 30.0

    # Overall-progress sub-range reserved for extraction in analyze()
    extraction_band: tuple[int, int] = (40, 80)

    # Reject signals shorter than one frame instead of using the [0] fallback
    reject_short_signals: bool = True

    # Top-two probability gap under which a prediction is reported as split
    split_threshold: float = 0.10

    def __post_init__(self):
        start, end = self.extraction_band
        if not 0 <= start <= end <= 100:
            raise ValueError(
                f"extraction_band must satisfy 0 <= start <= end <= 100, got {self.extraction_band}"
            )
        if self.max_duration is not None and self.max_duration <= 0:
            raise ValueError("max_duration must be positive or None")
