"""Decoder, report exporter and command-line tests."""

import io
import json

import numpy as np
import pytest
from scipy.io import wavfile

from scenesync.cli import ProgressPrinter, main
from scenesync.core.assembler import FEATURE_COUNT
from scenesync.errors import DecodeError, FileValidationError
from scenesync.io.decoder import MAX_FILE_SIZE, AudioDecoder, validate_audio_file
from scenesync.io.exporter import ReportExporter
from scenesync.pipeline import AnalysisPipeline, PipelineState


@pytest.fixture
def wav_path(tmp_path, mixed_signal):
    y, sr = mixed_signal
    path = tmp_path / "clip.wav"
    wavfile.write(path, sr, y)
    return path


@pytest.fixture
def stereo_wav_path(tmp_path, pure_sine):
    y, sr = pure_sine
    path = tmp_path / "stereo.wav"
    wavfile.write(path, sr, np.stack([y, y], axis=1))
    return path


@pytest.fixture
def report(sine_signal):
    return AnalysisPipeline().analyze(sine_signal)


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class TestAudioDecoder:
    def test_decodes_wav(self, wav_path, mixed_signal):
        y, sr = mixed_signal
        with AudioDecoder(wav_path) as decoder:
            signal = decoder.read()
        assert signal.sample_rate == sr
        assert signal.n_samples == len(y)
        assert signal.duration == pytest.approx(3.0)

    def test_downmixes_stereo(self, stereo_wav_path, pure_sine):
        y, _ = pure_sine
        with AudioDecoder(stereo_wav_path) as decoder:
            signal = decoder.read()
        assert signal.samples.ndim == 1
        assert signal.n_samples == len(y)

    def test_closed_after_context(self, wav_path):
        with AudioDecoder(wav_path) as decoder:
            decoder.read()
        assert decoder.closed
        with pytest.raises(DecodeError):
            decoder.read()

    def test_signal_independent_of_decoder(self, wav_path):
        with AudioDecoder(wav_path) as decoder:
            signal = decoder.read()
        assert signal.n_samples > 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(DecodeError):
            with AudioDecoder(tmp_path / "nope.wav"):
                pass

    def test_not_audio(self, tmp_path):
        path = tmp_path / "notes.wav"
        path.write_text("definitely not audio", encoding="utf-8")
        with pytest.raises(DecodeError) as info:
            with AudioDecoder(path):
                pass
        assert info.value.retryable is False


class TestFileValidation:
    def test_accepts_supported_file(self, wav_path):
        assert validate_audio_file(str(wav_path)) == wav_path

    def test_extension_case_insensitive(self, tmp_path):
        path = tmp_path / "LOUD.FLAC"
        path.write_bytes(b"fLaC")
        assert validate_audio_file(path) == path

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.mp3"
        path.write_bytes(b"")
        with pytest.raises(FileValidationError) as info:
            validate_audio_file(path)
        assert info.value.reason == "corrupt"
        assert info.value.user_message == "File appears to be empty or corrupted"

    def test_too_large(self, tmp_path):
        path = tmp_path / "huge.wav"
        with open(path, "wb") as f:
            f.truncate(MAX_FILE_SIZE + 1024 * 1024)
        with pytest.raises(FileValidationError) as info:
            validate_audio_file(path)
        assert info.value.reason == "size"
        assert info.value.user_message == "File is too large (51.0MB). Maximum size is 50MB"

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "clip.txt"
        path.write_bytes(b"RIFF")
        with pytest.raises(FileValidationError) as info:
            validate_audio_file(path)
        assert info.value.reason == "format"
        assert ".webm" in info.value.user_message

    def test_is_fatal_decode_error(self, tmp_path):
        path = tmp_path / "clip.aiff"
        path.write_bytes(b"FORM")
        with pytest.raises(DecodeError) as info:
            with AudioDecoder(path):
                pass
        assert info.value.stage == "decode"
        assert info.value.retryable is False

    def test_decoder_size_limit(self, wav_path):
        with pytest.raises(FileValidationError):
            with AudioDecoder(wav_path, max_file_size=1024):
                pass

    def test_rejected_before_extraction(self, tmp_path):
        path = tmp_path / "blank.ogg"
        path.write_bytes(b"")
        events = []
        with pytest.raises(FileValidationError):
            AnalysisPipeline().analyze_file(path, lambda p, s: events.append(p))
        assert events == [10, 20]


class TestAnalyzeFile:
    def test_progress_sequence(self, wav_path):
        events = []
        report = AnalysisPipeline().analyze_file(wav_path, lambda p, s: events.append((p, s)))
        assert events[:2] == [(10, "Loading audio..."), (20, "Decoding audio...")]
        assert events[-1] == (100, "Complete!")
        percents = [p for p, _ in events]
        assert percents == sorted(percents)
        assert len(events) == 12
        assert report.history == (
            PipelineState.IDLE,
            PipelineState.DECODING,
            PipelineState.EXTRACTING,
            PipelineState.CLASSIFYING,
            PipelineState.COMPLETE,
        )

    def test_decode_failure(self, tmp_path):
        path = tmp_path / "broken.mp3"
        path.write_bytes(b"\x00" * 64)
        with pytest.raises(DecodeError):
            AnalysisPipeline().analyze_file(path)


# ---------------------------------------------------------------------------
# Exporter
# ---------------------------------------------------------------------------

class TestReportExporter:
    def test_build_report_sections(self, report):
        data = ReportExporter().build_report(report)
        assert set(data) == {
            "metadata", "prediction", "processing_time", "features", "time_series"
        }
        assert len(data["features"]) == FEATURE_COUNT
        assert data["metadata"]["n_frames"] == len(report.time_series.rms)
        assert data["metadata"]["hop_size"] == 512

    def test_time_series_block(self, report):
        ts = ReportExporter().build_report(report)["time_series"]
        n = len(report.time_series.rms)
        assert len(ts["frame_times"]) == n
        assert ts["frame_times"][0] == 0.0
        assert ts["frame_times"][1] == pytest.approx(512 / 22050, abs=1e-4)
        for name in ("rms", "zcr", "spectral_centroid", "spectral_rolloff", "spectral_spread"):
            assert len(ts[name]) == n

    def test_precision(self, report):
        data = ReportExporter(precision=2).build_report(report)
        rms = data["features"]["rms_mean"]
        assert rms == round(rms, 2)

    def test_probabilities_ranked(self, report):
        probs = ReportExporter().build_report(report)["prediction"]["probabilities"]
        values = list(probs.values())
        assert values == sorted(values, reverse=True)

    def test_export_json(self, report, tmp_path):
        path = ReportExporter().export_json(report, tmp_path / "report.json")
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert data["prediction"]["label"] == report.prediction.label

    def test_export_numpy(self, report, tmp_path):
        path = ReportExporter().export_numpy(report, tmp_path / "series.npz")
        with np.load(path) as archive:
            assert archive["features"].shape == (FEATURE_COUNT,)
            assert list(archive["feature_names"])[:3] == ["duration", "sample_rate", "tempo"]
            assert "mfcc_12" in archive
            assert "contrast_6" in archive
            assert "chroma_11" in archive
            assert len(archive["frame_times"]) == len(archive["rms"])


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:
    def test_writes_report(self, wav_path, tmp_path, capsys):
        out = tmp_path / "out.json"
        npz = tmp_path / "out.npz"
        assert main([str(wav_path), "-o", str(out), "--npz", str(npz)]) == 0
        assert out.exists()
        assert npz.exists()
        stdout = capsys.readouterr().out
        assert "Scene:" in stdout
        assert "100% Complete!" in stdout

    def test_with_model_dir(self, wav_path, write_model_dir, capsys):
        assert main([str(wav_path), "--model-dir", str(write_model_dir())]) == 0
        # zero weights: the largest output bias (last label) wins
        assert "Scene: suspense" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.wav")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_rejected_file_message(self, tmp_path, capsys):
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")
        assert main([str(path)]) == 2
        assert "Unsupported file format" in capsys.readouterr().err

    def test_bad_model_dir(self, wav_path, tmp_path, capsys):
        assert main([str(wav_path), "--model-dir", str(tmp_path / "empty")]) == 2
        assert "Error:" in capsys.readouterr().err


class _FakeTerminal(io.StringIO):
    def isatty(self):
        return True


class TestProgressPrinter:
    def test_plain_lines_once_per_stage(self):
        out = io.StringIO()
        printer = ProgressPrinter(out)
        for pct, stage in [(10, "Loading audio..."), (10, "Loading audio..."), (100, "Complete!")]:
            printer(pct, stage)
        assert out.getvalue() == " 10% Loading audio...\n100% Complete!\n"

    def test_terminal_redraws_in_place(self):
        out = _FakeTerminal()
        printer = ProgressPrinter(out, width=10)
        printer(50, "rms")
        printer(100, "Complete!")
        text = out.getvalue()
        assert text.count("\r") == 2
        assert "|=====     |  50%" in text
        assert text.endswith("|==========| 100%\n")
