# core/pipeline.py
"""
Voice mood pipeline: RecordingSession -> TranscriptionPipeline -> MoodClassifier.

State lives in an Observable[PipelineState]. Every stage result is checked
against the generation captured when the stage started, so results that
arrive after a cancel or restart are discarded.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.classifier import MoodClassifier
from core.errors import MoodSenseError
from core.models import AudioPayload, PipelineState, Stage, VoiceStatus
from core.observable import Observable
from core.recording import RecordingSession
from core.transcription import TranscriptionPipeline

logger = logging.getLogger(__name__)

_BUSY = (Stage.RECORDING, Stage.UPLOADING, Stage.TRANSCRIBING, Stage.CLASSIFYING)


def _reason(exc: BaseException) -> str:
    if isinstance(exc, MoodSenseError):
        return exc.message
    return str(exc) or type(exc).__name__


class PipelineOrchestrator:
    def __init__(self,
                 recording: RecordingSession,
                 transcriber: TranscriptionPipeline,
                 classifier: MoodClassifier):
        self.recording = recording
        self.transcriber = transcriber
        self.classifier = classifier
        self.state: Observable[PipelineState] = Observable(PipelineState(), name="voice.state")
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    # ---- state helpers ----
    @property
    def current(self) -> PipelineState:
        return self.state.value

    def _stale(self, generation: int) -> bool:
        return self.current.generation != generation

    def _move(self, generation: int, stage: Stage, **fields) -> bool:
        cur = self.current
        if cur.generation != generation:
            logger.debug(f"[pipeline] discarding stale {stage.value} gen={generation} current_gen={cur.generation}")
            return False
        if not cur.can_move_to(stage):
            logger.warning(f"[pipeline] illegal transition {cur.stage.value} -> {stage.value}")
            return False
        fields.setdefault("transcript", cur.transcript)
        self.state.set(PipelineState(stage=stage, generation=generation, **fields))
        logger.debug(f"[pipeline] {cur.stage.value} -> {stage.value} gen={generation}")
        return True

    def _fail(self, generation: int, exc: BaseException) -> None:
        if self._move(generation, Stage.FAILED, reason=_reason(exc)):
            logger.error(f"[pipeline] failed gen={generation}: {_reason(exc)}")

    def _reset(self) -> int:
        """Force Idle under a new generation; returns that generation."""
        generation = self.current.generation + 1
        self.state.set(PipelineState(stage=Stage.IDLE, generation=generation))
        return generation

    # ---- user controls ----
    async def start(self) -> PipelineState:
        async with self._lock:
            cur = self.current
            if cur.stage in _BUSY:
                logger.debug(f"[pipeline] start ignored; stage={cur.stage.value}")
                return cur
            generation = self._reset() if cur.terminal else cur.generation
            try:
                await self.recording.start()
            except Exception as e:
                logger.exception("[pipeline] recording failed to start")
                self._fail(generation, e)
                return self.current
            if not self._move(generation, Stage.RECORDING):
                # cancelled while acquiring the microphone
                await self.recording.cancel()
            return self.current

    async def stop(self, wait: bool = True) -> PipelineState:
        """
        Finish recording and run the remote stages.

        With ``wait=False`` the remote stages run in a background task and
        progress is observed through ``state``.
        """
        async with self._lock:
            cur = self.current
            if cur.stage is not Stage.RECORDING:
                return cur
            generation = cur.generation
            try:
                payload = await self.recording.stop()
            except Exception as e:
                logger.exception("[pipeline] recording failed to finalize")
                self._fail(generation, e)
                return self.current
            if payload is None or self._stale(generation):
                return self.current
            task = self._task = asyncio.get_running_loop().create_task(self._process(payload, generation))
        if wait:
            await task
        return self.current

    async def run_payload(self, payload: AudioPayload) -> PipelineState:
        """Run the remote stages over an already-recorded payload."""
        async with self._lock:
            cur = self.current
            if cur.stage in _BUSY:
                logger.debug(f"[pipeline] run_payload ignored; stage={cur.stage.value}")
                return cur
            generation = self._reset()
            task = self._task = asyncio.get_running_loop().create_task(self._process(payload, generation))
        await task
        return self.current

    async def cancel(self) -> None:
        """Stop everything, release the microphone and drop in-flight results."""
        self._reset()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.recording.cancel()
        logger.debug("[pipeline] cancelled")

    async def close(self) -> None:
        await self.cancel()

    async def __aenter__(self) -> "PipelineOrchestrator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ---- stages ----
    async def _process(self, payload: AudioPayload, generation: int) -> None:
        try:
            await self._run_stages(payload, generation)
        except asyncio.CancelledError:
            # Caller gave up (timeout, disconnect); free the pipeline for the next run
            if not self._stale(generation):
                logger.debug(f"[pipeline] processing cancelled gen={generation}")
                self._reset()
            raise

    async def _run_stages(self, payload: AudioPayload, generation: int) -> None:
        if not self._move(generation, Stage.UPLOADING):
            return
        try:
            text = await self.transcriber.transcribe(
                payload,
                on_job=lambda job_id: self._move(generation, Stage.TRANSCRIBING, job_id=job_id),
            )
        except Exception as e:
            logger.exception("[pipeline] transcription stage failed")
            self._fail(generation, e)
            return

        if not self._move(generation, Stage.CLASSIFYING, transcript=text):
            return
        try:
            label = await self.classifier.classify(text)
        except Exception as e:
            logger.exception("[pipeline] classification stage failed")
            self._fail(generation, e)
            return

        self._move(generation, Stage.DONE, label=label, transcript=text)

    def status(self) -> VoiceStatus:
        cur = self.current
        return VoiceStatus(
            stage=cur.stage,
            recording=self.recording.recording,
            job_id=cur.job_id,
            transcript=cur.transcript,
            mood=cur.label,
            error=cur.reason,
        )
