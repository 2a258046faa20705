"""Core signal processing modules."""

from scenesync.core.assembler import FEATURE_NAMES, FeatureTimeSeries, FeatureVector
from scenesync.core.extractor import ExtractionResult, FeatureExtractor
from scenesync.core.frames import FRAME_SIZE, HOP_SIZE, FrameIterator
from scenesync.core.signal import AudioSignal

__all__ = [
    "AudioSignal",
    "FrameIterator",
    "FeatureExtractor",
    "ExtractionResult",
    "FeatureTimeSeries",
    "FeatureVector",
    "FEATURE_NAMES",
    "FRAME_SIZE",
    "HOP_SIZE",
]
