"""
End-to-end analysis pipeline.

Sequences decode hand-off, feature extraction on a background worker,
normalization and classification, and reports progress on a single 0-100
gauge:

    10  Loading audio...          (analyze_file only)
    20  Decoding audio...         (analyze_file only)
    40-80  eight feature passes   (remapped from the extractor's 0-100)
    80  Classifying scene...
    100 Complete!

Every failure reaching the caller is a stage-tagged ``SceneSyncError``.
"""

import asyncio
import enum
import logging
import queue
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from scenesync.config import PipelineConfig
from scenesync.core.assembler import FeatureTimeSeries, FeatureVector
from scenesync.core.extractor import ExtractionResult, FeatureExtractor, ProgressCallback
from scenesync.core.signal import AudioSignal
from scenesync.core.tempo import round_half_up
from scenesync.errors import (
    ClassificationError,
    ExtractionError,
    NormalizationError,
    SceneSyncError,
)
from scenesync.io.decoder import AudioDecoder
from scenesync.model.assets import ModelAssets
from scenesync.model.classifier import Prediction, classify
from scenesync.worker import (
    ErrorMessage,
    ExtractionWorker,
    ExtractRequest,
    ProgressMessage,
    ResultMessage,
    WorkerMessage,
)

logger = logging.getLogger(__name__)

STAGE_LOADING = "Loading audio..."
STAGE_DECODING = "Decoding audio..."
STAGE_CLASSIFYING = "Classifying scene..."
STAGE_COMPLETE = "Complete!"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class PipelineState(enum.Enum):
    IDLE = "idle"
    DECODING = "decoding"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETE, PipelineState.ERROR)


_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset(
        {PipelineState.DECODING, PipelineState.EXTRACTING, PipelineState.ERROR}
    ),
    PipelineState.DECODING: frozenset({PipelineState.EXTRACTING, PipelineState.ERROR}),
    PipelineState.EXTRACTING: frozenset({PipelineState.CLASSIFYING, PipelineState.ERROR}),
    PipelineState.CLASSIFYING: frozenset({PipelineState.COMPLETE, PipelineState.ERROR}),
    PipelineState.COMPLETE: frozenset(),
    PipelineState.ERROR: frozenset(),
}


class AnalysisRun:
    """State of one analysis call. Never shared between calls."""

    def __init__(self):
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self.error: Optional[SceneSyncError] = None

    def advance(self, new_state: PipelineState) -> None:
        """
        Move to ``new_state``.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal pipeline transition: {self.state.name} -> {new_state.name}"
            )
        logger.debug("Pipeline state %s -> %s", self.state.name, new_state.name)
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: SceneSyncError) -> None:
        if not self.state.is_terminal:
            self.advance(PipelineState.ERROR)
        self.error = error


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    stage: str


@dataclass(frozen=True)
class ProgressBand:
    """Sub-range of the overall gauge reserved for one stage."""

    start: int = 0
    end: int = 100

    def remap(self, local_percent: int) -> int:
        """``start + round(local * width / 100)``."""
        return self.start + round_half_up(local_percent * (self.end - self.start) / 100)


class ProgressReporter:
    """
    Forwards progress to a caller callback, keeping it non-decreasing and
    within [0, 100].

    Progress is advisory: a callback that raises is logged and detached, and
    the analysis carries on without it.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.events: list[ProgressEvent] = []
        self._last = 0

    def emit(self, percent: int, stage: str) -> None:
        percent = max(self._last, min(100, int(percent)))
        self._last = percent
        event = ProgressEvent(percent=percent, stage=stage)
        self.events.append(event)
        if self.callback is None:
            return
        try:
            self.callback(event.percent, event.stage)
        except Exception:
            logger.exception(
                "Progress callback failed at %d%% (%s); dropping further updates",
                event.percent, event.stage,
            )
            self.callback = None

    def banded(self, band: ProgressBand) -> ProgressCallback:
        """Callback that remaps a local 0-100 gauge into ``band``."""

        def emit_local(local_percent: int, stage: str) -> None:
            self.emit(band.remap(local_percent), stage)

        return emit_local


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisReport:
    """Everything one analysis call produces."""

    prediction: Prediction
    features: FeatureVector
    time_series: FeatureTimeSeries
    processing_time: float  # seconds
    audio_duration: float   # seconds, before truncation
    history: tuple[PipelineState, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.prediction.to_dict(),
            "features": self.features.as_dict(),
            "tempo": self.time_series.tempo,
            "processing_time": self.processing_time,
            "audio_duration": self.audio_duration,
        }


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class AnalysisPipeline:
    """
    Coordinates one or more concurrent analyses.

    The pipeline holds only read-only collaborators (config, assets,
    extractor), so a single instance can serve concurrent calls; every call
    gets its own worker thread, signal and ``AnalysisRun``.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        assets: Optional[ModelAssets] = None,
        extractor: Optional[FeatureExtractor] = None,
        decoder: Optional[Callable[[Union[str, Path]], AudioDecoder]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Coordinator policy. Defaults to PipelineConfig().
            assets: Trained model bundle. None selects the rule-based scorer.
            extractor: Feature extractor. Defaults to the eight standard passes.
            decoder: Factory returning a context-managed decoder for a path.
                     Defaults to AudioDecoder.
        """
        self.config = config or PipelineConfig()
        self.assets = assets
        self.extractor = extractor or FeatureExtractor()
        self.decoder = decoder or AudioDecoder

    # -- hand-off -----------------------------------------------------------

    def _hand_off(self, signal: AudioSignal) -> ExtractRequest:
        """Take ownership of ``signal``, truncate and validate it."""
        owned = signal.validate().transfer().truncated(self.config.max_duration)
        if self.config.reject_short_signals and owned.n_samples < self.extractor.frame_size:
            raise ExtractionError(
                f"Audio is too short to analyze: {owned.n_samples} samples, "
                f"need at least {self.extractor.frame_size}"
            )
        return ExtractRequest(signal=owned)

    def _receive(
        self, message: WorkerMessage, on_progress: ProgressCallback
    ) -> Optional[ExtractionResult]:
        """Handle one worker message; returns the result once terminal."""
        if isinstance(message, ProgressMessage):
            on_progress(message.percent, message.stage)
            return None
        if isinstance(message, ResultMessage):
            return message.result
        if isinstance(message, ErrorMessage):
            if isinstance(message.error, SceneSyncError):
                raise message.error
            raise ExtractionError(
                f"Feature extraction failed: {message.message}"
            ) from message.error
        raise TypeError(f"Unexpected worker message: {message!r}")

    # -- extraction ---------------------------------------------------------

    def extract(
        self,
        signal: AudioSignal,
        on_progress: Optional[ProgressCallback] = None,
        band: tuple[int, int] = (0, 100),
    ) -> ExtractionResult:
        """
        Extract features on a background worker and block until done.

        ``signal`` is transferred to the worker and released on return.

        Args:
            signal: Decoded audio.
            on_progress: Optional callback(percent, stage), called in this
                         thread once per feature pass.
            band: Overall-progress range the passes are remapped into.

        Returns:
            ExtractionResult with the feature vector and time series.

        Raises:
            DecodeError: If the signal is empty or its duration is not a
                         positive finite number.
            ExtractionError: If the signal is too short, was already handed
                             off, or a pass fails.
        """
        request = self._hand_off(signal)
        report = ProgressReporter(on_progress).banded(ProgressBand(*band))

        inbox: "queue.Queue[WorkerMessage]" = queue.Queue()
        ExtractionWorker(self.extractor, inbox.put).start(request)

        while True:
            result = self._receive(inbox.get(), report)
            if result is not None:
                return result

    async def run_pipeline(
        self,
        signal: AudioSignal,
        on_progress: Optional[ProgressCallback] = None,
        band: tuple[int, int] = (0, 100),
    ) -> ExtractionResult:
        """
        Awaitable form of ``extract``.

        The worker posts messages into the running event loop, so progress
        callbacks run on the loop thread and the loop is never blocked.
        """
        request = self._hand_off(signal)
        report = ProgressReporter(on_progress).banded(ProgressBand(*band))

        loop = asyncio.get_running_loop()
        inbox: "asyncio.Queue[WorkerMessage]" = asyncio.Queue()

        def post(message: WorkerMessage) -> None:
            loop.call_soon_threadsafe(inbox.put_nowait, message)

        ExtractionWorker(self.extractor, post).start(request)

        while True:
            result = self._receive(await inbox.get(), report)
            if result is not None:
                return result

    # -- classification -----------------------------------------------------

    def classify(self, features: FeatureVector) -> Prediction:
        """
        Classify a feature vector with the configured assets.

        Raises:
            NormalizationError: Vector and scaler lengths disagree.
            ClassificationError: Any other scoring failure.
        """
        try:
            return classify(features, self.assets)
        except (NormalizationError, ClassificationError):
            raise
        except Exception as exc:
            raise ClassificationError(f"Prediction failed: {exc}") from exc

    # -- full analysis ------------------------------------------------------

    def _finish(
        self,
        run: AnalysisRun,
        progress: ProgressReporter,
        extraction: ExtractionResult,
        audio_duration: float,
        started: float,
    ) -> AnalysisReport:
        run.advance(PipelineState.CLASSIFYING)
        progress.emit(self.config.extraction_band[1], STAGE_CLASSIFYING)
        prediction = self.classify(extraction.features)

        run.advance(PipelineState.COMPLETE)
        progress.emit(100, STAGE_COMPLETE)

        elapsed = time.perf_counter() - started
        logger.info(
            "Analysis complete: %s (%.1f%%) in %.2fs",
            prediction.label, prediction.confidence * 100, elapsed,
        )
        return AnalysisReport(
            prediction=prediction,
            features=extraction.features,
            time_series=extraction.time_series,
            processing_time=elapsed,
            audio_duration=audio_duration,
            history=tuple(run.history),
        )

    def analyze(
        self,
        signal: AudioSignal,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisReport:
        """
        Extract and classify an already-decoded signal.

        Args:
            signal: Decoded audio (transferred to the worker).
            on_progress: Optional callback(percent, stage).

        Returns:
            AnalysisReport.
        """
        return self._analyze(
            signal, AnalysisRun(), ProgressReporter(on_progress), time.perf_counter()
        )

    def _analyze(
        self,
        signal: AudioSignal,
        run: AnalysisRun,
        progress: ProgressReporter,
        started: float,
    ) -> AnalysisReport:
        audio_duration = signal.duration

        try:
            run.advance(PipelineState.EXTRACTING)
            extraction = self.extract(
                signal, progress.emit, band=self.config.extraction_band
            )
            return self._finish(run, progress, extraction, audio_duration, started)
        except SceneSyncError as exc:
            run.fail(exc)
            logger.warning("Analysis failed at %s: %s", exc.stage, exc)
            raise

    async def analyze_async(
        self,
        signal: AudioSignal,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisReport:
        """Awaitable form of ``analyze``."""
        started = time.perf_counter()
        run = AnalysisRun()
        progress = ProgressReporter(on_progress)
        audio_duration = signal.duration

        try:
            run.advance(PipelineState.EXTRACTING)
            extraction = await self.run_pipeline(
                signal, progress.emit, band=self.config.extraction_band
            )
            return self._finish(run, progress, extraction, audio_duration, started)
        except SceneSyncError as exc:
            run.fail(exc)
            logger.warning("Analysis failed at %s: %s", exc.stage, exc)
            raise

    def analyze_file(
        self,
        path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisReport:
        """
        Decode an audio file and analyze it.

        The decoder is closed before extraction starts.

        Raises:
            DecodeError: If the file cannot be decoded.
        """
        started = time.perf_counter()
        run = AnalysisRun()
        progress = ProgressReporter(on_progress)

        progress.emit(10, STAGE_LOADING)
        try:
            run.advance(PipelineState.DECODING)
            progress.emit(20, STAGE_DECODING)
            with self.decoder(path) as decoder:
                signal = decoder.read()
        except SceneSyncError as exc:
            run.fail(exc)
            logger.warning("Analysis failed at %s: %s", exc.stage, exc)
            raise

        logger.info("Decoded %s: %r", path, signal)
        return self._analyze(signal, run, progress, started)
