"""
Scene classification.

Two interchangeable strategies map a feature vector to a Prediction:

* the trained network (``ModelAssets``): normalize, then forward pass
* ``RuleBasedScorer``: hand-tuned scores from four raw features, used when
  no model assets are available
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from scenesync.core.assembler import FeatureVector
from scenesync.errors import ClassificationError
from scenesync.model.assets import ModelAssets, load_default_labels
from scenesync.model.normalizer import normalize

logger = logging.getLogger(__name__)

SPLIT_THRESHOLD = 0.10
PROBABILITY_TOLERANCE = 1e-6


@dataclass(frozen=True)
class Prediction:
    """Classification outcome for one track."""

    label: str
    confidence: float
    probabilities: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_probabilities(
        cls, labels: Sequence[str], probabilities: Sequence[float]
    ) -> "Prediction":
        """
        Build a prediction from a distribution aligned with ``labels``.

        The label is the argmax; ties go to the earliest label.

        Raises:
            ClassificationError: If the distribution is malformed.
        """
        probs = np.asarray(probabilities, dtype=np.float64).ravel()
        if len(probs) != len(labels):
            raise ClassificationError(
                f"Got {len(probs)} probabilities for {len(labels)} labels"
            )
        if not np.all(np.isfinite(probs)):
            raise ClassificationError("Model produced non-finite probabilities")
        if np.any(probs < 0):
            raise ClassificationError("Model produced negative probabilities")
        if abs(probs.sum() - 1.0) > PROBABILITY_TOLERANCE:
            raise ClassificationError(
                f"Probabilities sum to {probs.sum():.6f}, expected 1"
            )

        # np.argmax returns the first maximal index
        idx = int(np.argmax(probs))
        return cls(
            label=labels[idx],
            confidence=float(probs[idx]),
            probabilities={label: float(p) for label, p in zip(labels, probs)},
        )

    def ranked(self) -> list[tuple[str, float]]:
        """Labels ordered by probability, highest first (stable on ties)."""
        return sorted(self.probabilities.items(), key=lambda kv: -kv[1])

    def is_split(self, threshold: float = SPLIT_THRESHOLD) -> bool:
        """True when the top two labels are within ``threshold`` of each other."""
        ranked = self.ranked()
        if len(ranked) < 2:
            return False
        return ranked[0][1] - ranked[1][1] < threshold

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "probabilities": dict(self.probabilities),
            "split": self.is_split(),
        }


# ---------------------------------------------------------------------------
# Rule-based strategy
# ---------------------------------------------------------------------------


def _unit(x: float) -> float:
    return float(np.clip(x, 0.0, 1.0))


class RuleBasedScorer:
    """
    Deterministic fallback classifier.

    Scores each default label from tempo, mean energy, energy variability
    and brightness, each first squashed into [0, 1]. Every score is a
    non-negative blend, so the distribution is ``score / total``.
    """

    TEMPO_RANGE = (60.0, 200.0)
    LOUD_RMS = 0.3
    BRIGHT_HZ = 4000.0

    def __init__(self, labels: Optional[Sequence[str]] = None):
        self.labels = tuple(labels) if labels is not None else load_default_labels()
        unknown = set(self.labels) - set(self._RULES)
        if unknown:
            raise ValueError(f"No scoring rule for labels: {sorted(unknown)}")

    def terms(self, features: FeatureVector) -> dict[str, float]:
        """Normalized inputs: tempo_n, energy_n, var_n, bright_n."""
        lo, hi = self.TEMPO_RANGE
        rms_mean = features["rms_mean"]
        return {
            "tempo_n": _unit((features["tempo"] - lo) / (hi - lo)),
            "energy_n": _unit(rms_mean / self.LOUD_RMS),
            # coefficient of variation of the energy envelope
            "var_n": _unit(features["rms_std"] / rms_mean) if rms_mean > 0 else 0.0,
            "bright_n": _unit(features["centroid_mean"] / self.BRIGHT_HZ),
        }

    _RULES = {
        "action": lambda t: (
            0.40 * t["tempo_n"] + 0.35 * t["energy_n"] + 0.25 * t["bright_n"]
        ),
        "dramatic": lambda t: (
            0.45 * t["var_n"] + 0.35 * t["energy_n"] + 0.20 * (1 - t["tempo_n"])
        ),
        "romantic": lambda t: (
            0.40 * (1 - t["tempo_n"]) + 0.35 * (1 - t["energy_n"]) + 0.25 * (1 - t["var_n"])
        ),
        "suspense": lambda t: (
            0.40 * (1 - t["energy_n"]) + 0.30 * t["var_n"] + 0.30 * (1 - t["bright_n"])
        ),
    }

    def scores(self, features: FeatureVector) -> dict[str, float]:
        t = self.terms(features)
        return {label: float(self._RULES[label](t)) for label in self.labels}

    def predict(self, features: FeatureVector) -> Prediction:
        scores = self.scores(features)
        total = sum(scores.values())
        if not np.isfinite(total) or total <= 0:
            n = len(self.labels)
            return Prediction(
                label=self.labels[0],
                confidence=1.0 / n,
                probabilities={label: 1.0 / n for label in self.labels},
            )
        return Prediction.from_probabilities(
            self.labels, [scores[label] / total for label in self.labels]
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def classify(
    features: FeatureVector,
    assets: Optional[ModelAssets] = None,
) -> Prediction:
    """
    Classify a raw feature vector.

    Args:
        features: 44-element feature vector (not yet normalized).
        assets: Trained model bundle. When None the rule-based scorer runs.

    Returns:
        Prediction over the asset labels (or the default labels).

    Raises:
        NormalizationError: If the vector or scaler has the wrong length.
        ClassificationError: If the forward pass fails or yields an invalid
                             distribution.
    """
    if assets is None:
        logger.debug("No model assets, using rule-based scorer")
        try:
            return RuleBasedScorer().predict(features)
        except ClassificationError:
            raise
        except (KeyError, ValueError) as exc:
            raise ClassificationError(f"Rule-based scoring failed: {exc}") from exc

    normalized = normalize(features, assets.scaler)
    try:
        probabilities = assets.model.predict(normalized)
    except (ValueError, FloatingPointError) as exc:
        raise ClassificationError(f"Prediction failed: {exc}") from exc

    prediction = Prediction.from_probabilities(assets.labels, probabilities)
    logger.debug("Predicted %s (%.3f)", prediction.label, prediction.confidence)
    return prediction

