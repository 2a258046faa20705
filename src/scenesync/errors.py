"""
Stage-tagged error taxonomy for the analysis pipeline.

Every failure that reaches a caller is one of these, so the UI layer can
decide whether to offer a retry without inspecting message strings.
"""


class SceneSyncError(Exception):
    """Base class for all pipeline failures."""

    stage: str = "unknown"
    retryable: bool = False
    default_user_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: str = "", detail: str | None = None):
        super().__init__(message or self.default_user_message)
        self.detail = detail

    @property
    def user_message(self) -> str:
        """Short, user-facing description of the failure."""
        return self.default_user_message


class DecodeError(SceneSyncError):
    """Signal is empty, has a non-finite duration, or could not be decoded."""

    stage = "decode"
    retryable = False
    default_user_message = (
        "Failed to decode audio file. The file may be corrupted or in an "
        "unsupported format."
    )


class FileValidationError(DecodeError):
    """
    The file was rejected before decoding.

    ``reason`` is one of ``"corrupt"``, ``"size"`` or ``"format"``, and the
    message itself is safe to show to the user.
    """

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason

    @property
    def user_message(self) -> str:
        return str(self)


class ExtractionError(SceneSyncError):
    """A feature pass failed, or the signal is too short for one frame."""

    stage = "extraction"
    retryable = True
    default_user_message = "Failed to analyze audio features. Please try a different file."


class NormalizationError(SceneSyncError):
    """Feature vector and scaler parameters disagree in length."""

    stage = "normalization"
    retryable = False
    default_user_message = (
        "The AI model files are inconsistent. Please reinstall or reload the model."
    )


class ClassificationError(SceneSyncError):
    """The scoring function failed or produced an invalid distribution."""

    stage = "classification"
    retryable = True
    default_user_message = "AI classification failed. Please try again."


class AssetLoadError(SceneSyncError):
    """Scaler, label list or model weights are missing or malformed."""

    stage = "asset_load"
    retryable = False
    default_user_message = (
        "Failed to load the AI model. Please check the model files and try again."
    )


__all__ = [
    "SceneSyncError",
    "DecodeError",
    "FileValidationError",
    "ExtractionError",
    "NormalizationError",
    "ClassificationError",
    "AssetLoadError",
]
