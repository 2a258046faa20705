"""
Feature extraction: runs the eight passes, estimates tempo and assembles the
feature vector.

Passes run strictly in order and one at a time; a progress callback is
invoked before each pass with a local percentage in [0, 100].
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from scenesync.core.assembler import (
    FeatureTimeSeries,
    FeatureVector,
    assemble_feature_vector,
)
from scenesync.core.frames import FRAME_SIZE, HOP_SIZE, FrameIterator
from scenesync.core.passes import FEATURE_PASSES, FeaturePass
from scenesync.core.signal import AudioSignal
from scenesync.core.tempo import estimate_tempo

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class ExtractionResult:
    """Terminal result of one extraction run."""

    features: FeatureVector
    time_series: FeatureTimeSeries


class FeatureExtractor:
    """
    Extracts the feature vector and time series from an audio signal.

    Holds no per-call state, so one instance can serve concurrent calls.
    """

    def __init__(
        self,
        passes: tuple[FeaturePass, ...] = FEATURE_PASSES,
        frame_size: int = FRAME_SIZE,
        hop_size: int = HOP_SIZE,
    ):
        """
        Initialize the extractor.

        Args:
            passes: Feature passes in execution order. Must include the
                    eight standard pass names.
            frame_size: Frame length in samples.
            hop_size: Frame hop in samples.
        """
        progress = [p.progress for p in passes]
        if progress != sorted(set(progress)):
            raise ValueError("pass progress values must be strictly increasing")
        self.passes = passes
        self.frame_size = frame_size
        self.hop_size = hop_size

    def frames(self, signal: AudioSignal) -> FrameIterator:
        return FrameIterator(signal.samples, self.frame_size, self.hop_size)

    def extract(
        self,
        signal: AudioSignal,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """
        Run all passes over ``signal``.

        Args:
            signal: Signal to analyze.
            on_progress: Optional callback(percent, stage), called once per
                         pass before it runs.

        Returns:
            ExtractionResult with the 44-element vector and the time series.
        """
        frames = self.frames(signal)
        sr = signal.sample_rate
        logger.debug(
            "Extracting %d frames (%d samples @ %d Hz)",
            len(frames), len(frames.samples), sr,
        )

        series = {}
        for feature_pass in self.passes:
            if on_progress is not None:
                on_progress(feature_pass.progress, feature_pass.stage)
            series[feature_pass.name] = feature_pass.run(frames, sr)

        # Tempo comes from the RMS series, no extra pass needed
        tempo = estimate_tempo(series["rms"].values, sr, self.hop_size)

        time_series = FeatureTimeSeries.from_series(series, tempo=tempo, sample_rate=sr)
        features = assemble_feature_vector(time_series, signal.duration)
        logger.debug("Extracted %d features, tempo=%d", len(features), tempo)

        return ExtractionResult(features=features, time_series=time_series)
