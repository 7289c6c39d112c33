import time
import pytest
from fastapi.testclient import TestClient

import api.routes as routes
from api.main import app
from core.errors import TranscriptionError
from core.live import FaceMoodPipeline
from core.media import MediaStreamManager
from core.pipeline import PipelineOrchestrator
from core.recording import RecordingSession
from fakes import FakeDetector, FakeRecorder, FakeSource, ScriptedClassifier, ScriptedTranscriber


@pytest.fixture
def devices(monkeypatch, settings):
    """Swap both pipelines for fake-backed ones; returns their sources."""
    face_source, voice_source = FakeSource(), FakeSource()
    recorder = FakeRecorder(final_chunk=b"tail")
    face = FaceMoodPipeline(settings, MediaStreamManager(face_source), FakeDetector(loaded=False))
    voice = PipelineOrchestrator(
        RecordingSession(MediaStreamManager(voice_source), recorder_factory=lambda s: recorder),
        ScriptedTranscriber(text="why does this never work"),
        ScriptedClassifier(label="frustrated"),
    )
    monkeypatch.setitem(routes._pipelines, "face", face)
    monkeypatch.setitem(routes._pipelines, "voice", voice)
    return face_source, voice_source


def _wait_for(client, path, stage, attempts=100):
    body = client.get(path).json()
    for _ in range(attempts):
        if body["stage"] == stage:
            break
        time.sleep(0.01)
        body = client.get(path).json()
    return body


def test_health():
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}

def test_face_start_status_stop(devices):
    face_source, _ = devices
    with TestClient(app) as client:
        assert client.post("/face/start").json() == {"status": "started"}
        assert client.post("/face/start").json() == {"status": "already_running"}
        time.sleep(0.05)
        status = client.get("/face/status").json()
        assert status["running"] and status["models_loaded"]
        assert status["mood"] == "neutral"
        assert client.post("/face/stop").json() == {"status": "stopped"}
        assert client.post("/face/stop").json() == {"status": "not_running"}
    assert face_source.live_tracks() == []

def test_face_start_camera_denied(monkeypatch, settings):
    face = FaceMoodPipeline(settings, MediaStreamManager(FakeSource(error=PermissionError("denied"))),
                            FakeDetector())
    monkeypatch.setitem(routes._pipelines, "face", face)
    with TestClient(app) as client:
        r = client.post("/face/start")
        assert r.status_code == 403
        assert r.json()["detail"] == "Camera access denied"
        assert client.get("/face/status").json()["error"] == "Camera access denied"

def test_voice_record_and_classify(devices):
    _, voice_source = devices
    with TestClient(app) as client:
        assert client.post("/voice/start").json() == {"status": "recording"}
        assert client.post("/voice/start").json()["status"] == "already_running"
        assert client.post("/voice/stop").json()["status"] == "stopped"
        body = _wait_for(client, "/voice/status", "done")
        assert body["mood"] == "frustrated"
        assert body["transcript"] == "why does this never work"
        assert client.post("/voice/stop").json() == {"status": "not_running"}
    assert voice_source.live_tracks() == []

def test_voice_start_without_microphone(monkeypatch, settings):
    voice = PipelineOrchestrator(
        RecordingSession(MediaStreamManager(FakeSource(error=OSError("no input"))),
                         recorder_factory=lambda s: FakeRecorder()),
        ScriptedTranscriber(), ScriptedClassifier(),
    )
    monkeypatch.setitem(routes._pipelines, "voice", voice)
    with TestClient(app) as client:
        r = client.post("/voice/start")
        assert r.status_code == 503
        assert client.get("/voice/status").json()["stage"] == "failed"

def test_analyze_audio(devices):
    with TestClient(app) as client:
        r = client.post("/analyze/audio", files={"file": ("clip.wav", b"RIFF0000WAVE", "audio/wav")})
        assert r.status_code == 200
        assert r.json() == {"transcript": "why does this never work", "mood": "frustrated", "status": "done"}

def test_analyze_audio_rejects_empty_upload(devices):
    with TestClient(app) as client:
        r = client.post("/analyze/audio", files={"file": ("clip.wav", b"", "audio/wav")})
        assert r.status_code == 400

def test_analyze_audio_failure_is_bad_gateway(monkeypatch, settings, fake_source):
    voice = PipelineOrchestrator(
        RecordingSession(MediaStreamManager(fake_source)),
        ScriptedTranscriber(error=TranscriptionError(detail="Audio file is corrupt")),
        ScriptedClassifier(),
    )
    monkeypatch.setitem(routes._pipelines, "voice", voice)
    with TestClient(app) as client:
        r = client.post("/analyze/audio", files={"file": ("clip.wav", b"junk", "audio/wav")})
        assert r.status_code == 502
        assert r.json()["detail"] == "Transcription failed: Audio file is corrupt"

def test_analyze_audio_busy(devices):
    with TestClient(app) as client:
        client.post("/voice/start")
        r = client.post("/analyze/audio", files={"file": ("clip.wav", b"abc", "audio/wav")})
        assert r.status_code == 409
