# core/live.py
"""
Live face mood pipeline.

Loads the expression detector, acquires the camera and drives a
DetectionLoop over it. Published values:
- label: dominant expression of the first detected face
- overlay: display-sized boxes for the overlay renderer
- error: single user-facing message when start fails
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.config import Settings
from core.detection_loop import DetectionLoop
from core.emotion import ExpressionDetector
from core.errors import DeviceUnavailableError, ModelLoadError, MoodSenseError, PermissionDeniedError
from core.labels import map_mood_to_animation_state
from core.media import MediaSession, MediaStreamManager
from core.models import FaceStatus, MediaKind, OverlayFrame
from core.observable import Observable

logger = logging.getLogger(__name__)


class FaceMoodPipeline:
    """Owns one camera session and one detection loop."""
    def __init__(self, settings: Settings, media: MediaStreamManager, detector: ExpressionDetector):
        self.s = settings
        self.media = media
        self.detector = detector
        self.loop = DetectionLoop(detector, interval=settings.VIDEO_TICK_INTERVAL)
        self.error: Observable[Optional[str]] = Observable(None, name="face.error")
        self._session: Optional[MediaSession] = None
        self._lock = asyncio.Lock()

    @property
    def label(self) -> Observable[str]:
        return self.loop.label

    @property
    def overlay(self) -> Observable[OverlayFrame]:
        return self.loop.overlay

    @property
    def running(self) -> bool:
        return self.loop.running

    # ---- lifecycle ----
    async def start(self, display_size: Optional[tuple[int, int]] = None) -> bool:
        """
        Load models, open the camera and start sampling.

        Returns False if already running. On failure the error observable is
        set and the MoodSenseError is re-raised.
        """
        async with self._lock:
            if self.running:
                return False
            self.error.set(None)
            try:
                await self.detector.load()
            except ModelLoadError as e:
                self.error.set(e.message)
                raise

            try:
                session = await asyncio.to_thread(self.media.acquire, MediaKind.VIDEO)
            except PermissionDeniedError:
                logger.exception("[live] camera access denied")
                self.error.set("Camera access denied")
                raise
            except DeviceUnavailableError:
                logger.exception("[live] camera unavailable")
                self.error.set("Camera unavailable")
                raise

            self._session = session
            try:
                self.loop.start(session.stream, display_size)
            except MoodSenseError as e:
                self._release()
                self.error.set(e.message)
                raise
            logger.debug("[live] face pipeline started")
            return True

    async def stop(self) -> None:
        async with self._lock:
            await self.loop.stop()
            self._release()
            # No camera, no mood; renderers fall back to neutral
            if self.label.value is not None:
                self.label.set(None)
            if self.overlay.value is not None:
                self.overlay.set(None)

    async def close(self) -> None:
        await self.stop()

    async def __aenter__(self) -> "FaceMoodPipeline":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _release(self) -> None:
        session, self._session = self._session, None
        self.media.release(session)

    # ---- read side ----
    @property
    def animation_state(self) -> str:
        return map_mood_to_animation_state(self.label.value)

    def status(self) -> FaceStatus:
        overlay = self.overlay.value
        return FaceStatus(
            running=self.running,
            models_loaded=bool(self.detector.loaded),
            mood=self.label.value,
            animation_state=self.animation_state,
            error=self.error.value,
            faces=list(overlay.faces) if overlay is not None else [],
        )
