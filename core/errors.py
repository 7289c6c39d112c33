"""
Error taxonomy shared by both pipelines.

Every error carries a short user-facing ``message``; pipelines surface exactly
one of these per failure.
"""
from __future__ import annotations


class MoodSenseError(Exception):
    """Base class for all pipeline errors."""
    message = "Something went wrong"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---- media ----
class PermissionDeniedError(MoodSenseError):
    message = "Media access denied"


class DeviceUnavailableError(MoodSenseError):
    message = "Media device unavailable"


class MicrophoneUnavailableError(MoodSenseError):
    message = (
        "Unable to access microphone. Please make sure your microphone is "
        "connected and you have granted permission."
    )


# ---- detector ----
class ModelLoadError(MoodSenseError):
    message = "Failed to load models"


class DetectorNotLoadedError(MoodSenseError):
    message = "Detector models are not loaded yet"


class DetectorTickError(MoodSenseError):
    """A single sampling tick failed. Logged, never surfaced."""
    message = "Detection tick failed"


# ---- remote stages ----
class UploadError(MoodSenseError):
    message = "Failed to upload recording"


class TranscriptionError(MoodSenseError):
    message = "Transcription failed"

    def __init__(self, message: str | None = None, detail: str | None = None):
        self.detail = detail
        if message is None and detail:
            message = f"Transcription failed: {detail}"
        super().__init__(message)


class TranscriptionTimeout(MoodSenseError):
    message = "Transcription timed out"


class ClassificationError(MoodSenseError):
    message = "Failed to classify mood"
