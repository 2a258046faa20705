"""Shared fixtures: synthetic signals, feature vectors and model directories."""

import json

import numpy as np
import pytest

from scenesync.core.assembler import FEATURE_COUNT, FEATURE_NAMES, FeatureVector
from scenesync.core.signal import AudioSignal

TEST_SR = 22050
DEFAULT_LABELS = ["action", "dramatic", "romantic", "suspense"]


@pytest.fixture
def pure_sine():
    """2 seconds of A4 at half amplitude."""
    sr = TEST_SR
    duration = 2.0
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    y = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    return y, sr


@pytest.fixture
def mixed_signal():
    """3 seconds of a soft pad with decaying clicks at 120 BPM."""
    sr = TEST_SR
    duration = 3.0
    n = int(sr * duration)
    t = np.arange(n) / sr
    y = 0.1 * np.sin(2 * np.pi * 220.0 * t)

    rng = np.random.default_rng(0)
    click_len = int(0.05 * sr)
    envelope = np.exp(-np.linspace(0, 8, click_len))
    for start in range(0, n - click_len, int(0.5 * sr)):
        y[start:start + click_len] += 0.8 * envelope * rng.standard_normal(click_len)

    return y.astype(np.float32), sr


@pytest.fixture
def sine_signal(pure_sine):
    y, sr = pure_sine
    return AudioSignal(y, sr)


@pytest.fixture
def mixed_audio(mixed_signal):
    y, sr = mixed_signal
    return AudioSignal(y, sr)


@pytest.fixture
def silent_signal():
    return AudioSignal(np.zeros(TEST_SR), TEST_SR)


@pytest.fixture
def make_features():
    """Factory: FeatureVector with named overrides, zeros elsewhere."""

    def _make(**overrides):
        return FeatureVector([float(overrides.get(name, 0.0)) for name in FEATURE_NAMES])

    return _make


def dense_model_dict(n_outputs, bias=None, hidden=None):
    """Weight graph with all-zero weights, so outputs depend only on the biases."""
    if bias is None:
        bias = list(range(n_outputs))
    layers = []
    n_in = FEATURE_COUNT
    if hidden:
        layers.append({
            "weights": np.zeros((n_in, hidden)).tolist(),
            "bias": [0.0] * hidden,
            "activation": "relu",
        })
        n_in = hidden
    layers.append({
        "weights": np.zeros((n_in, n_outputs)).tolist(),
        "bias": list(bias),
        "activation": "softmax",
    })
    return {"format": "dense-v1", "layers": layers}


@pytest.fixture
def write_model_dir(tmp_path):
    """
    Factory writing a complete model directory; keyword arguments replace
    individual resources (pass None to omit one).
    """

    def _write(
        subdir="model",
        scaler=None,
        labels=None,
        model=None,
        feature_names=None,
        omit=(),
    ):
        path = tmp_path / subdir
        path.mkdir(parents=True, exist_ok=True)
        labels = DEFAULT_LABELS if labels is None else labels
        resources = {
            "scaler_params.json": scaler or {
                "mean": [0.0] * FEATURE_COUNT,
                "scale": [1.0] * FEATURE_COUNT,
            },
            "scene_types.json": labels,
            "model.json": model or dense_model_dict(len(labels)),
        }
        if feature_names is not None:
            resources["feature_names.json"] = feature_names
        for name, data in resources.items():
            if name in omit:
                continue
            (path / name).write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
