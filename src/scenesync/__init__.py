"""Frame-based audio analysis and scene classification."""

from scenesync.config import PipelineConfig
from scenesync.core.extractor import FeatureExtractor
from scenesync.core.signal import AudioSignal
from scenesync.errors import SceneSyncError
from scenesync.model.assets import AssetLoader, ModelAssets
from scenesync.model.classifier import Prediction
from scenesync.pipeline import AnalysisPipeline, AnalysisReport

__version__ = "0.1.0"
__all__ = [
    "AnalysisPipeline",
    "AnalysisReport",
    "AssetLoader",
    "AudioSignal",
    "FeatureExtractor",
    "ModelAssets",
    "PipelineConfig",
    "Prediction",
    "SceneSyncError",
]
