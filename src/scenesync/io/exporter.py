"""
Analysis report serialization.

Exports an ``AnalysisReport`` to JSON (prediction, feature vector and the
scalar time series with frame timestamps) or to a NumPy ``.npz`` archive
holding every series at full precision.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import librosa
import numpy as np

from scenesync.core.assembler import FEATURE_NAMES, FeatureTimeSeries
from scenesync.core.frames import FRAME_SIZE, HOP_SIZE
from scenesync.pipeline import AnalysisReport


@dataclass
class ReportMetadata:
    """Metadata header for the report."""

    tempo: int
    beat_count: int
    duration: float
    audio_duration: float
    sample_rate: int
    n_frames: int
    frame_size: int = FRAME_SIZE
    hop_size: int = HOP_SIZE
    schema_version: str = "1.0"


class ReportExporter:
    """
    Exports analysis reports.

    The JSON report is meant for charts and history views; ``.npz`` keeps
    the raw arrays for downstream analysis.
    """

    def __init__(self, precision: int = 4):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float) -> Optional[float]:
        """Round to configured precision; non-finite values become None."""
        f = float(value)
        if np.isnan(f) or np.isinf(f):
            return None
        return round(f, self.precision)

    def _round_all(self, values: np.ndarray) -> list[Optional[float]]:
        return [self._round(v) for v in values]

    def frame_times(self, n_frames: int, sample_rate: int) -> np.ndarray:
        """Start time in seconds of each analysis frame."""
        return librosa.frames_to_time(np.arange(n_frames), sr=sample_rate, hop_length=HOP_SIZE)

    def _build_time_series(self, ts: FeatureTimeSeries) -> dict[str, Any]:
        scalars = ts.scalar_series()
        n_frames = len(scalars["rms"])
        block: dict[str, Any] = {
            "frame_times": self._round_all(self.frame_times(n_frames, ts.sample_rate)),
        }
        for name, values in scalars.items():
            block[name] = self._round_all(values)
        return block

    def build_report(self, report: AnalysisReport) -> dict[str, Any]:
        """
        Build the complete report dictionary.

        Args:
            report: Output of ``AnalysisPipeline.analyze``.

        Returns:
            Report dictionary ready for serialization.
        """
        features = report.features
        metadata = ReportMetadata(
            tempo=int(features["tempo"]),
            beat_count=int(features["beat_count"]),
            duration=self._round(features["duration"]),
            audio_duration=self._round(report.audio_duration),
            sample_rate=int(features["sample_rate"]),
            n_frames=len(report.time_series.rms),
        )
        prediction = report.prediction

        return {
            "metadata": {
                "tempo": metadata.tempo,
                "beat_count": metadata.beat_count,
                "duration": metadata.duration,
                "audio_duration": metadata.audio_duration,
                "sample_rate": metadata.sample_rate,
                "n_frames": metadata.n_frames,
                "frame_size": metadata.frame_size,
                "hop_size": metadata.hop_size,
                "schema_version": metadata.schema_version,
            },
            "prediction": {
                "label": prediction.label,
                "confidence": self._round(prediction.confidence),
                "split": prediction.is_split(),
                "probabilities": {
                    label: self._round(p) for label, p in prediction.ranked()
                },
            },
            "processing_time": self._round(report.processing_time),
            "features": {name: self._round(v) for name, v in features.as_dict().items()},
            "time_series": self._build_time_series(report.time_series),
        }

    def export_json(
        self,
        report: AnalysisReport,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Export the report to a JSON file.

        Returns:
            Path to written file.
        """
        data = self.build_report(report)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)

        return output_path

    def export_numpy(
        self,
        report: AnalysisReport,
        output_path: Union[str, Path],
    ) -> Path:
        """
        Export the feature vector and every series as a ``.npz`` archive.

        Multi-channel series are stored one key per channel (``mfcc_0`` ...)
        since channels may differ in length after non-finite values are
        dropped.

        Returns:
            Path to written file.
        """
        output_path = Path(output_path)
        ts = report.time_series

        arrays: dict[str, Any] = dict(
            features=report.features.values,
            feature_names=np.array(FEATURE_NAMES),
            labels=np.array(list(report.prediction.probabilities.keys())),
            probabilities=np.array(list(report.prediction.probabilities.values())),
            tempo=np.array(ts.tempo),
            sample_rate=np.array(ts.sample_rate),
        )
        arrays.update(ts.scalar_series())
        arrays["frame_times"] = self.frame_times(len(ts.rms), ts.sample_rate)

        for prefix, series in (
            ("mfcc", ts.mfcc),
            ("contrast", ts.spectral_contrast),
            ("chroma", ts.chroma),
        ):
            for i, channel in enumerate(series.channels):
                arrays[f"{prefix}_{i}"] = channel

        np.savez_compressed(output_path, **arrays)
        return output_path
