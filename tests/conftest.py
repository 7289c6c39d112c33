import pytest

from core.config import Settings
from fakes import FakeSource

@pytest.fixture
def settings():
    # No real waiting between polls/ticks in tests
    return Settings(
        ASSEMBLYAI_API_KEY="test-assemblyai-key",
        OPENAI_API_KEY="test-openai-key",
        TRANSCRIPTION_POLL_INTERVAL=0,
        TRANSCRIPTION_MAX_POLLS=5,
        VIDEO_TICK_INTERVAL=0.01,
    )

@pytest.fixture
def fake_source():
    return FakeSource()
