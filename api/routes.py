"""
REST endpoints: start/stop/status per pipeline plus one-shot audio analysis.
"""
from typing import Optional
from fastapi import APIRouter, UploadFile, File, HTTPException
import logging

from core.classifier import MoodClassifier
from core.config import Settings
from core.emotion import DeepFaceExpressionDetector
from core.errors import DeviceUnavailableError, ModelLoadError, MoodSenseError, PermissionDeniedError
from core.live import FaceMoodPipeline
from core.media import DeviceStreamSource, MediaStreamManager
from core.models import AudioPayload, MoodResult, Stage
from core.pipeline import PipelineOrchestrator
from core.recording import RecordingSession
from core.transcription import TranscriptionPipeline


router = APIRouter()
settings = Settings()
logger = logging.getLogger(__name__)

# One instance of each pipeline per process; created on first use
_pipelines: dict = {"face": None, "voice": None}


def get_face_pipeline() -> FaceMoodPipeline:
    if _pipelines["face"] is None:
        media = MediaStreamManager(DeviceStreamSource(settings))
        _pipelines["face"] = FaceMoodPipeline(settings, media, DeepFaceExpressionDetector(settings))
    return _pipelines["face"]


def get_voice_pipeline() -> PipelineOrchestrator:
    if _pipelines["voice"] is None:
        media = MediaStreamManager(DeviceStreamSource(settings))
        _pipelines["voice"] = PipelineOrchestrator(
            RecordingSession(media),
            TranscriptionPipeline(settings),
            MoodClassifier(settings),
        )
    return _pipelines["voice"]


async def shutdown_pipelines() -> None:
    """Release every device on app shutdown, even if stop was never called."""
    face: Optional[FaceMoodPipeline] = _pipelines.get("face")
    voice: Optional[PipelineOrchestrator] = _pipelines.get("voice")
    if face is not None:
        await face.close()
    if voice is not None:
        await voice.close()


def _http_status(exc: MoodSenseError) -> int:
    if isinstance(exc, PermissionDeniedError):
        return 403
    if isinstance(exc, DeviceUnavailableError):
        return 503
    if isinstance(exc, ModelLoadError):
        return 500
    return 502


# ---- face ----

@router.post("/face/start")
async def face_start():
    pipeline = get_face_pipeline()
    if pipeline.running:
        return {"status": "already_running"}
    try:
        await pipeline.start()
    except MoodSenseError as e:
        logger.exception("[api] face pipeline failed to start")
        raise HTTPException(status_code=_http_status(e), detail=e.message)
    return {"status": "started"}

@router.post("/face/stop")
async def face_stop():
    pipeline = get_face_pipeline()
    if not pipeline.running:
        return {"status": "not_running"}
    await pipeline.stop()
    return {"status": "stopped"}

@router.get("/face/status")
async def face_status():
    return get_face_pipeline().status().model_dump()


# ---- voice ----

@router.post("/voice/start")
async def voice_start():
    """
    Start recording. A finished (done/failed) pipeline is reset first.
    """
    pipeline = get_voice_pipeline()
    if pipeline.current.stage not in (Stage.IDLE, Stage.DONE, Stage.FAILED):
        return {"status": "already_running", "stage": pipeline.current.stage.value}
    state = await pipeline.start()
    if state.stage is Stage.FAILED:
        raise HTTPException(status_code=503, detail=state.reason)
    return {"status": "recording"}

@router.post("/voice/stop")
async def voice_stop():
    """
    Stop recording; transcription and classification continue in the
    background and are observed through /voice/status.
    """
    pipeline = get_voice_pipeline()
    if pipeline.current.stage is not Stage.RECORDING:
        return {"status": "not_running"}
    state = await pipeline.stop(wait=False)
    return {"status": "stopped", "stage": state.stage.value}

@router.get("/voice/status")
async def voice_status():
    return get_voice_pipeline().status().model_dump()


@router.post("/analyze/audio")
async def analyze_audio(file: UploadFile = File(...)):
    """
    Run an uploaded recording through transcription and mood classification.

    Args:
        file: Uploaded audio file.

    Returns:
        dict: transcript and mood.
    """
    logger.debug(f"[api] /analyze/audio filename={file.filename} content_type={file.content_type}")
    try:
        data = await file.read()
    except Exception as e:
        logger.exception("[api] upload read failed")
        raise HTTPException(status_code=400, detail=f"Upload failed: {e}")
    if not data:
        raise HTTPException(status_code=400, detail="Upload failed: empty file")

    pipeline = get_voice_pipeline()
    if pipeline.current.stage not in (Stage.IDLE, Stage.DONE, Stage.FAILED):
        raise HTTPException(status_code=409, detail="Voice pipeline is busy")

    payload = AudioPayload(data=data, mime_type=file.content_type or "application/octet-stream")
    state = await pipeline.run_payload(payload)
    if state.stage is not Stage.DONE:
        raise HTTPException(status_code=502, detail=state.reason or "Mood analysis did not complete")
    return MoodResult(transcript=state.transcript or "", mood=state.label or "").model_dump()
