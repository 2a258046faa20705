"""
Feed-forward scoring network.

The trained model ships as a JSON weight graph: an ordered list of dense
layers, each ``{"weights": [[...]], "bias": [...], "activation": "relu"}``
with ``weights`` shaped ``(n_in, n_out)``::

    {
      "format": "dense-v1",
      "layers": [
        {"weights": [[...]], "bias": [...], "activation": "relu"},
        {"weights": [[...]], "bias": [...], "activation": "softmax"}
      ]
    }
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping

import numpy as np
from scipy.special import expit, softmax

WEIGHT_FORMAT = "dense-v1"

ACTIVATIONS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "linear": lambda x: x,
    "relu": lambda x: np.maximum(x, 0.0),
    "tanh": np.tanh,
    "sigmoid": expit,
    "softmax": lambda x: softmax(x, axis=-1),
}


@dataclass(frozen=True, eq=False)
class DenseLayer:
    """Fully connected layer: ``activation(x @ weights + bias)``."""

    weights: np.ndarray  # (n_in, n_out)
    bias: np.ndarray     # (n_out,)
    activation: str = "linear"

    def __post_init__(self):
        weights = np.array(self.weights, dtype=np.float64)
        bias = np.array(self.bias, dtype=np.float64).ravel()
        if weights.ndim != 2:
            raise ValueError(f"layer weights must be 2-D, got shape {weights.shape}")
        if bias.shape != (weights.shape[1],):
            raise ValueError(
                f"bias length {len(bias)} does not match layer width {weights.shape[1]}"
            )
        if self.activation not in ACTIVATIONS:
            raise ValueError(f"unknown activation: {self.activation!r}")
        weights.setflags(write=False)
        bias.setflags(write=False)
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "bias", bias)

    @property
    def n_inputs(self) -> int:
        return self.weights.shape[0]

    @property
    def n_outputs(self) -> int:
        return self.weights.shape[1]

    def forward(self, x: np.ndarray) -> np.ndarray:
        return ACTIVATIONS[self.activation](x @ self.weights + self.bias)


class FeedForwardModel:
    """Stack of dense layers producing one probability per label."""

    def __init__(self, layers: list[DenseLayer]):
        if not layers:
            raise ValueError("model has no layers")
        for prev, nxt in zip(layers[:-1], layers[1:]):
            if prev.n_outputs != nxt.n_inputs:
                raise ValueError(
                    f"layer width mismatch: {prev.n_outputs} -> {nxt.n_inputs}"
                )
        self.layers = tuple(layers)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeedForwardModel":
        """Build from a parsed weight graph."""
        fmt = data.get("format", WEIGHT_FORMAT)
        if fmt != WEIGHT_FORMAT:
            raise ValueError(f"unsupported weight format: {fmt!r}")
        layers = data.get("layers")
        if not isinstance(layers, list):
            raise ValueError("weight graph must contain a 'layers' list")
        return cls([
            DenseLayer(
                weights=layer["weights"],
                bias=layer["bias"],
                activation=layer.get("activation", "linear"),
            )
            for layer in layers
        ])

    @property
    def n_inputs(self) -> int:
        return self.layers[0].n_inputs

    @property
    def n_outputs(self) -> int:
        return self.layers[-1].n_outputs

    def predict(self, x: np.ndarray) -> np.ndarray:
        """
        Forward pass for a single input vector.

        The output is always a probability distribution: softmax is applied
        unless the final layer already is one.
        """
        out = np.asarray(x, dtype=np.float64).ravel()
        if len(out) != self.n_inputs:
            raise ValueError(f"model expects {self.n_inputs} inputs, got {len(out)}")
        for layer in self.layers:
            out = layer.forward(out)
        if self.layers[-1].activation != "softmax":
            out = softmax(out)
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": WEIGHT_FORMAT,
            "layers": [
                {
                    "weights": layer.weights.tolist(),
                    "bias": layer.bias.tolist(),
                    "activation": layer.activation,
                }
                for layer in self.layers
            ],
        }
