"""
Pydantic data models for pipeline state and API IO.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field

class MediaKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"

class Box(BaseModel):
    x: float
    y: float
    width: float
    height: float

class FaceDetection(BaseModel):
    box: Box
    expressions: Dict[str, float] = Field(default_factory=dict)

class DetectionFrame(BaseModel):
    timestamp: float
    faces: List[FaceDetection] = Field(default_factory=list)

class OverlayFrame(BaseModel):
    """Detections resized to the display the renderer draws on."""
    timestamp: float
    display_size: tuple[int, int]
    faces: List[FaceDetection] = Field(default_factory=list)

class AudioPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "audio/wav"

    def __len__(self) -> int:
        return len(self.data)


# transcription

class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)

class TranscriptionJob(BaseModel):
    id: str
    status: JobStatus
    text: Optional[str] = None
    error: Optional[str] = None


# voice pipeline state machine

class Stage(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    CLASSIFYING = "classifying"
    DONE = "done"
    FAILED = "failed"

# Forward order; FAILED sits outside it
_ORDER = [Stage.IDLE, Stage.RECORDING, Stage.UPLOADING, Stage.TRANSCRIBING,
          Stage.CLASSIFYING, Stage.DONE]

class PipelineState(BaseModel):
    """
    Tagged union over Stage. ``job_id`` is only set while TRANSCRIBING,
    ``label`` only when DONE, ``reason`` only when FAILED.
    """
    model_config = ConfigDict(frozen=True)

    stage: Stage = Stage.IDLE
    generation: int = 0
    job_id: Optional[str] = None
    label: Optional[str] = None
    reason: Optional[str] = None
    transcript: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.stage in (Stage.DONE, Stage.FAILED)

    def can_move_to(self, stage: Stage) -> bool:
        if self.terminal:
            return stage is Stage.IDLE
        if stage is Stage.FAILED:
            return True
        return _ORDER.index(stage) > _ORDER.index(self.stage)


# API IO

class FaceStatus(BaseModel):
    running: bool
    models_loaded: bool
    mood: Optional[str] = None
    animation_state: str = "neutral"
    error: Optional[str] = None
    faces: List[FaceDetection] = Field(default_factory=list)

class VoiceStatus(BaseModel):
    stage: Stage
    recording: bool
    job_id: Optional[str] = None
    transcript: Optional[str] = None
    mood: Optional[str] = None
    error: Optional[str] = None

class MoodResult(BaseModel):
    transcript: str
    mood: str
    status: Literal["done", "failed"] = "done"
