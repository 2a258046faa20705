"""
Feature vector schema, assembly and the end-to-end extractor.
"""

import numpy as np
import pytest

from scenesync.core.assembler import (
    FEATURE_COUNT,
    FEATURE_NAMES,
    FeatureTimeSeries,
    FeatureVector,
    assemble_feature_vector,
)
from scenesync.core.extractor import FeatureExtractor
from scenesync.core.passes import FEATURE_PASSES, FeatureSeries
from scenesync.core.signal import AudioSignal


@pytest.fixture
def extractor():
    return FeatureExtractor()


@pytest.fixture
def extracted(extractor, mixed_audio):
    return extractor.extract(mixed_audio)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class TestSchema:
    def test_feature_count(self):
        assert FEATURE_COUNT == 44
        assert len(set(FEATURE_NAMES)) == 44

    def test_slot_order(self):
        assert FEATURE_NAMES[:12] == (
            "duration", "sample_rate", "tempo", "beat_count",
            "rms_mean", "rms_std", "rms_max", "zcr_mean",
            "centroid_mean", "centroid_std", "rolloff_mean", "bandwidth_mean",
        )
        assert FEATURE_NAMES[12] == "mfcc_0"
        assert FEATURE_NAMES[24] == "mfcc_12"
        assert FEATURE_NAMES[25] == "contrast_0"
        assert FEATURE_NAMES[32] == "chroma_0"
        assert FEATURE_NAMES[43] == "chroma_11"


class TestFeatureVector:
    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            FeatureVector([0.0] * 43)
        with pytest.raises(ValueError):
            FeatureVector([0.0] * 45)

    def test_immutable(self, make_features):
        vector = make_features(tempo=120)
        with pytest.raises(ValueError):
            vector.values[0] = 1.0

    def test_named_access(self, make_features):
        vector = make_features(tempo=128, rms_mean=0.25)
        assert vector["tempo"] == 128.0
        assert vector[4] == 0.25
        assert vector.as_dict()["rms_mean"] == 0.25
        assert len(vector.to_list()) == 44

    def test_equality(self, make_features):
        assert make_features(tempo=100) == make_features(tempo=100)
        assert make_features(tempo=100) != make_features(tempo=101)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

class TestAssembly:
    def _time_series(self):
        def scalar(name, values):
            return FeatureSeries(name, (np.array(values, dtype=float),))

        def multi(name, n):
            return FeatureSeries(name, tuple(np.array([float(i), float(i) + 2]) for i in range(n)))

        return FeatureTimeSeries(
            rms=scalar("rms", [0.1, 0.3]),
            zcr=scalar("zcr", [0.05, 0.15]),
            spectral_centroid=scalar("spectral_centroid", [1000.0, 3000.0]),
            spectral_rolloff=scalar("spectral_rolloff", [4000.0]),
            spectral_spread=scalar("spectral_spread", [1500.0]),
            mfcc=multi("mfcc", 13),
            spectral_contrast=multi("spectral_contrast", 7),
            chroma=multi("chroma", 12),
            tempo=120,
            sample_rate=22050,
        )

    def test_reduction(self):
        vector = assemble_feature_vector(self._time_series(), duration=10.0)
        d = vector.as_dict()
        assert d["duration"] == 10.0
        assert d["sample_rate"] == 22050
        assert d["tempo"] == 120
        assert d["beat_count"] == 20
        assert d["rms_mean"] == pytest.approx(0.2)
        assert d["rms_std"] == pytest.approx(0.1)
        assert d["rms_max"] == pytest.approx(0.3)
        assert d["zcr_mean"] == pytest.approx(0.1)
        assert d["centroid_mean"] == pytest.approx(2000.0)
        assert d["centroid_std"] == pytest.approx(1000.0)
        assert d["rolloff_mean"] == 4000.0
        assert d["bandwidth_mean"] == 1500.0
        assert d["mfcc_0"] == pytest.approx(1.0)
        assert d["mfcc_12"] == pytest.approx(13.0)
        assert d["contrast_6"] == pytest.approx(7.0)
        assert d["chroma_11"] == pytest.approx(12.0)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TestFeatureExtractor:
    def test_vector_complete_and_finite(self, extracted):
        assert len(extracted.features) == 44
        assert np.all(np.isfinite(extracted.features.values))

    def test_basic_properties(self, extracted, mixed_audio):
        f = extracted.features
        assert f["duration"] == pytest.approx(mixed_audio.duration)
        assert f["sample_rate"] == mixed_audio.sample_rate
        assert 60 <= f["tempo"] <= 200
        assert f["tempo"] == extracted.time_series.tempo

    def test_time_series_lengths(self, extracted, extractor, mixed_audio):
        n_frames = len(extractor.frames(mixed_audio))
        ts = extracted.time_series
        for values in ts.scalar_series().values():
            assert len(values) == n_frames
        assert ts.mfcc.n_channels == 13
        assert ts.spectral_contrast.n_channels == 7
        assert ts.chroma.n_channels == 12

    def test_progress_per_pass(self, extractor, sine_signal):
        events = []
        extractor.extract(sine_signal, on_progress=lambda p, s: events.append((p, s)))
        assert events == [(p.progress, p.stage) for p in FEATURE_PASSES]

    def test_deterministic(self, extractor, mixed_signal):
        y, sr = mixed_signal
        a = extractor.extract(AudioSignal(y, sr))
        b = extractor.extract(AudioSignal(y, sr))
        assert a.features == b.features

    def test_does_not_modify_signal(self, extractor, mixed_audio):
        before = mixed_audio.samples.copy()
        extractor.extract(mixed_audio)
        assert np.array_equal(before, mixed_audio.samples)

    def test_short_signal_uses_fallback(self, extractor):
        signal = AudioSignal(np.full(1000, 0.5), 22050)
        result = extractor.extract(signal)
        f = result.features
        assert np.all(np.isfinite(f.values))
        assert f["tempo"] == 120
        assert f["rms_mean"] == 0.0
        assert f["chroma_0"] == 0.0
        assert result.time_series.rms.values.tolist() == [0.0]

    def test_silence(self, extractor, silent_signal):
        f = extractor.extract(silent_signal).features
        assert np.all(np.isfinite(f.values))
        assert f["rms_mean"] == 0.0
        assert f["tempo"] == 120

    def test_progress_must_increase(self):
        with pytest.raises(ValueError):
            FeatureExtractor(passes=tuple(reversed(FEATURE_PASSES)))
