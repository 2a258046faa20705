"""
Audio file decoding.

A thin adapter over ``librosa.load`` that hands the pipeline a mono
``AudioSignal``. The decoder holds the decoded buffer only while open and
must be closed before extraction starts::

    with AudioDecoder("track.mp3") as decoder:
        signal = decoder.read()
"""

import logging
import math
from pathlib import Path
from typing import Optional, Union

import librosa
import numpy as np

from scenesync.core.signal import AudioSignal
from scenesync.errors import DecodeError, FileValidationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".mp3", ".wav", ".m4a", ".aac", ".ogg", ".webm", ".flac")
MAX_FILE_SIZE = 50 * 1024 * 1024  # bytes


def validate_audio_file(
    audio_path: Union[str, Path],
    max_file_size: int = MAX_FILE_SIZE,
) -> Path:
    """
    Reject files that are empty, too large or not a supported audio type.

    Args:
        audio_path: Path to an existing file.
        max_file_size: Size limit in bytes.

    Returns:
        The path, as a Path.

    Raises:
        FileValidationError: With ``reason`` "corrupt", "size" or "format".
    """
    path = Path(audio_path)
    size = path.stat().st_size

    if size == 0:
        raise FileValidationError("File appears to be empty or corrupted", "corrupt")
    if size > max_file_size:
        raise FileValidationError(
            f"File is too large ({size / (1024 * 1024):.1f}MB). "
            f"Maximum size is {max_file_size // (1024 * 1024)}MB",
            "size",
        )
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise FileValidationError(
            f"Unsupported file format. Please use: {', '.join(SUPPORTED_EXTENSIONS)}",
            "format",
        )
    return path


class AudioDecoder:
    """
    Context-managed decoder for one audio file.

    Entering the context decodes the file; ``read()`` returns an independent
    ``AudioSignal`` copy, and leaving the context releases the decoded buffer.
    """

    def __init__(
        self,
        audio_path: Union[str, Path],
        sr: Optional[int] = None,
        mono: bool = True,
        max_file_size: int = MAX_FILE_SIZE,
    ):
        """
        Initialize the decoder.

        Args:
            audio_path: Path to audio file (mp3, wav, m4a, aac, ogg, webm, flac).
            sr: Target sample rate. None preserves the file's own rate.
            mono: Downmix to mono if True.
            max_file_size: Files larger than this many bytes are rejected.
        """
        self.audio_path = Path(audio_path)
        self.sr = sr
        self.mono = mono
        self.max_file_size = max_file_size
        self._y: Optional[np.ndarray] = None
        self._sr: Optional[int] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> "AudioDecoder":
        """
        Decode the file into memory.

        Raises:
            DecodeError: If the file is missing, unreadable or not audio.
            FileValidationError: If the file is empty, too large or has an
                                 unsupported extension.
        """
        if self._closed:
            raise DecodeError("Decoder already closed")
        if not self.audio_path.exists():
            raise DecodeError(f"Audio file not found: {self.audio_path}")
        validate_audio_file(self.audio_path, self.max_file_size)

        logger.debug("Decoding %s", self.audio_path)
        try:
            y, sr_out = librosa.load(self.audio_path, sr=self.sr, mono=self.mono)
        except Exception as exc:
            raise DecodeError(
                f"Failed to decode audio. Please ensure the file is a valid "
                f"audio format: {exc}"
            ) from exc

        self._y = y
        self._sr = int(sr_out)
        return self

    def read(self) -> AudioSignal:
        """
        Return the decoded audio as a validated signal.

        Raises:
            DecodeError: If the decoder is not open, or the audio is empty or
                         has a non-finite duration.
        """
        if self._y is None or self._sr is None:
            raise DecodeError("Decoder is not open")
        duration = librosa.get_duration(y=self._y, sr=self._sr)
        if not math.isfinite(duration) or duration <= 0:
            raise DecodeError("Audio file appears to be empty or corrupted.")
        return AudioSignal.from_decoder(self._y, self._sr, duration)

    def close(self) -> None:
        """Release the decoded buffer."""
        self._y = None
        self._sr = None
        self._closed = True

    def __enter__(self) -> "AudioDecoder":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
