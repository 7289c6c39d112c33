"""
Configuration for the mood sensing pipelines.
"""
from pydantic import BaseModel
import os

class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.

    Remote credentials are only ever read from the environment.
    """
    # Face pipeline
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    VIDEO_TICK_INTERVAL: float = float(os.getenv("VIDEO_TICK_INTERVAL", "0.2"))
    DETECTOR_BACKEND: str = os.getenv("DETECTOR_BACKEND", "opencv")

    # Voice capture
    AUDIO_SAMPLE_RATE: int = int(os.getenv("AUDIO_SAMPLE_RATE", "16000"))
    AUDIO_CHANNELS: int = int(os.getenv("AUDIO_CHANNELS", "1"))
    AUDIO_BLOCK_SECONDS: float = float(os.getenv("AUDIO_BLOCK_SECONDS", "0.5"))

    # Remote transcription
    ASSEMBLYAI_API_KEY: str | None = os.getenv("ASSEMBLYAI_API_KEY") or None
    ASSEMBLYAI_BASE_URL: str = os.getenv("ASSEMBLYAI_BASE_URL", "https://api.assemblyai.com")
    TRANSCRIPTION_POLL_INTERVAL: float = float(os.getenv("TRANSCRIPTION_POLL_INTERVAL", "3"))
    TRANSCRIPTION_MAX_POLLS: int = int(os.getenv("TRANSCRIPTION_MAX_POLLS", "200"))

    # Remote classification
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY") or None
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")

    # HTTP
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))
    HTTP_RETRIES: int = int(os.getenv("HTTP_RETRIES", "0"))

    def __init__(self, **data):
        super().__init__(**data)
        # Clamp intervals/bounds so a bad env value cannot spin or block forever
        object.__setattr__(self, "VIDEO_TICK_INTERVAL", max(0.01, float(self.VIDEO_TICK_INTERVAL)))
        object.__setattr__(self, "TRANSCRIPTION_POLL_INTERVAL", max(0.0, float(self.TRANSCRIPTION_POLL_INTERVAL)))
        object.__setattr__(self, "TRANSCRIPTION_MAX_POLLS", max(1, int(self.TRANSCRIPTION_MAX_POLLS)))
        object.__setattr__(self, "HTTP_RETRIES", max(0, int(self.HTTP_RETRIES)))
        object.__setattr__(self, "ASSEMBLYAI_BASE_URL", self.ASSEMBLYAI_BASE_URL.rstrip("/"))
        object.__setattr__(self, "OPENAI_BASE_URL", self.OPENAI_BASE_URL.rstrip("/"))
