"""Scene model: normalization, assets and classification."""

from scenesync.model.assets import AssetLoader, ModelAssets, load_assets, load_default_labels
from scenesync.model.classifier import Prediction, RuleBasedScorer, classify
from scenesync.model.network import DenseLayer, FeedForwardModel
from scenesync.model.normalizer import ScalerParams, normalize

__all__ = [
    "AssetLoader",
    "ModelAssets",
    "load_assets",
    "load_default_labels",
    "Prediction",
    "RuleBasedScorer",
    "classify",
    "DenseLayer",
    "FeedForwardModel",
    "ScalerParams",
    "normalize",
]
