"""
Background extraction worker and its message protocol.

Each extraction call gets its own thread. The coordinator sends one
``ExtractRequest`` (which owns the transferred signal) and receives, in
order, zero or more ``ProgressMessage`` followed by exactly one
``ResultMessage`` or ``ErrorMessage``.

The worker never touches coordinator state directly; everything goes through
the ``post`` callable, which is ``queue.Queue.put`` for blocking callers or a
``loop.call_soon_threadsafe`` wrapper for asyncio callers.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Union

from scenesync.core.extractor import ExtractionResult, FeatureExtractor
from scenesync.core.signal import AudioSignal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractRequest:
    """Coordinator -> worker. ``signal`` is owned by the worker."""

    signal: AudioSignal


@dataclass(frozen=True)
class ProgressMessage:
    """Worker -> coordinator, sent before each feature pass."""

    percent: int  # 0-100 through the feature passes
    stage: str


@dataclass(frozen=True)
class ResultMessage:
    """Worker -> coordinator, terminal on success."""

    result: ExtractionResult


@dataclass(frozen=True)
class ErrorMessage:
    """Worker -> coordinator, terminal on failure."""

    message: str
    error: BaseException


WorkerMessage = Union[ProgressMessage, ResultMessage, ErrorMessage]
PostFn = Callable[[WorkerMessage], None]


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


class ExtractionWorker:
    """
    One-shot extraction thread.

    There is no cancellation: once started, the worker runs every pass to
    completion. The thread is a daemon so an abandoned run cannot keep the
    interpreter alive.
    """

    def __init__(self, extractor: FeatureExtractor, post: PostFn):
        self.extractor = extractor
        self.post = post
        self._thread: threading.Thread | None = None

    def start(self, request: ExtractRequest) -> threading.Thread:
        """Spawn the worker thread for ``request``."""
        if self._thread is not None:
            raise RuntimeError("ExtractionWorker can only be started once")
        self._thread = threading.Thread(
            target=self._run,
            args=(request,),
            name="scenesync-extract",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self, request: ExtractRequest) -> None:
        def on_progress(percent: int, stage: str) -> None:
            self.post(ProgressMessage(percent=percent, stage=stage))

        try:
            result = self.extractor.extract(request.signal, on_progress=on_progress)
        except Exception as exc:
            logger.debug("Extraction worker failed: %s", exc, exc_info=True)
            self.post(ErrorMessage(message=str(exc), error=exc))
            return
        self.post(ResultMessage(result=result))
