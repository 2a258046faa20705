"""
Classifier asset loading.

A model directory holds three JSON resources produced by training:

* ``scaler_params.json``  - ``{"mean": [44], "scale": [44]}``
* ``scene_types.json``    - ordered label list
* ``model.json``          - dense weight graph (see ``scenesync.model.network``)

plus an optional ``feature_names.json`` that must match the vector schema.
Loading builds a complete ``ModelAssets`` bundle or fails as a whole.
"""

import json
import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Optional, Union

from scenesync.core.assembler import FEATURE_COUNT, FEATURE_NAMES
from scenesync.errors import AssetLoadError, NormalizationError
from scenesync.model.network import FeedForwardModel
from scenesync.model.normalizer import ScalerParams

logger = logging.getLogger(__name__)

SCALER_FILE = "scaler_params.json"
LABELS_FILE = "scene_types.json"
MODEL_FILE = "model.json"
FEATURE_NAMES_FILE = "feature_names.json"


@lru_cache(maxsize=1)
def load_default_labels() -> tuple[str, ...]:
    """Scene labels packaged with scenesync, used by the rule-based scorer."""
    with resources.files("scenesync.model").joinpath(LABELS_FILE).open(
        "r", encoding="utf-8"
    ) as f:
        return tuple(json.load(f))


@dataclass(frozen=True)
class ModelAssets:
    """Read-only bundle shared by every classification call."""

    scaler: ScalerParams
    labels: tuple[str, ...]
    model: FeedForwardModel
    feature_names: tuple[str, ...] = FEATURE_NAMES

    def __post_init__(self):
        if len(self.labels) == 0:
            raise ValueError("label list is empty")
        if len(set(self.labels)) != len(self.labels):
            raise ValueError("label list contains duplicates")
        if self.model.n_inputs != FEATURE_COUNT:
            raise ValueError(
                f"model expects {self.model.n_inputs} inputs, feature vector has {FEATURE_COUNT}"
            )
        if self.model.n_outputs != len(self.labels):
            raise ValueError(
                f"model has {self.model.n_outputs} outputs for {len(self.labels)} labels"
            )


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise AssetLoadError(f"Model asset not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise AssetLoadError(f"Model asset unreadable: {path}: {exc}") from exc


def load_assets(model_dir: Union[str, Path]) -> ModelAssets:
    """
    Load and validate every asset in ``model_dir``.

    Args:
        model_dir: Directory containing the model JSON resources.

    Returns:
        A fully populated ModelAssets.

    Raises:
        AssetLoadError: If any resource is missing or malformed.
    """
    model_dir = Path(model_dir)
    logger.info("Loading model assets from %s", model_dir)

    scaler_data = _read_json(model_dir / SCALER_FILE)
    labels_data = _read_json(model_dir / LABELS_FILE)
    model_data = _read_json(model_dir / MODEL_FILE)

    names_path = model_dir / FEATURE_NAMES_FILE
    feature_names = FEATURE_NAMES
    if names_path.exists():
        feature_names = tuple(_read_json(names_path))
        if feature_names != FEATURE_NAMES:
            raise AssetLoadError(
                f"{FEATURE_NAMES_FILE} does not match the {FEATURE_COUNT}-feature schema"
            )

    try:
        if not isinstance(labels_data, list) or not all(isinstance(x, str) for x in labels_data):
            raise ValueError(f"{LABELS_FILE} must be a list of strings")
        assets = ModelAssets(
            scaler=ScalerParams.from_dict(scaler_data),
            labels=tuple(labels_data),
            model=FeedForwardModel.from_dict(model_data),
            feature_names=feature_names,
        )
    except (ValueError, TypeError, KeyError, AttributeError, NormalizationError) as exc:
        raise AssetLoadError(f"Malformed model assets in {model_dir}: {exc}") from exc

    logger.info("Model assets loaded: %d scene types %s", len(assets.labels), list(assets.labels))
    return assets


class AssetLoader:
    """
    Idempotent, thread-safe holder for process-wide model assets.

    ``load()`` is a no-op once assets are loaded. A failed load leaves the
    loader empty, and ``require()`` keeps raising until a later load succeeds.
    """

    def __init__(self, model_dir: Union[str, Path]):
        self.model_dir = Path(model_dir)
        self._assets: Optional[ModelAssets] = None
        self._last_error: Optional[AssetLoadError] = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._assets is not None

    def load(self) -> ModelAssets:
        """Load assets if not already loaded, and return them."""
        with self._lock:
            if self._assets is not None:
                logger.debug("Model assets already loaded")
                return self._assets
            try:
                self._assets = load_assets(self.model_dir)
            except AssetLoadError as exc:
                self._last_error = exc
                raise
            self._last_error = None
            return self._assets

    def reload(self) -> ModelAssets:
        """Discard any loaded assets and load again."""
        with self._lock:
            self._assets = None
        return self.load()

    def require(self) -> ModelAssets:
        """
        Return loaded assets.

        Raises:
            AssetLoadError: If assets were never loaded or the last load failed.
        """
        assets = self._assets
        if assets is None:
            if self._last_error is not None:
                raise AssetLoadError(
                    f"Model assets unavailable after failed load: {self._last_error}"
                ) from self._last_error
            raise AssetLoadError("Model not loaded. Call load() first.")
        return assets
