"""
Fixed-cadence facial expression sampling.

Every tick reads one frame from the camera stream, runs the detector and
publishes the first face's dominant label plus display-sized boxes for the
overlay renderer. A failing tick is logged and dropped; the loop keeps going.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Protocol

import numpy as np

from core.emotion import ExpressionDetector
from core.errors import DetectorNotLoadedError, DetectorTickError
from core.labels import dominant_label
from core.models import Box, FaceDetection, OverlayFrame
from core.observable import Observable

logger = logging.getLogger(__name__)


class VideoHandle(Protocol):
    def ready(self) -> bool:
        ...

    def read(self) -> Optional[np.ndarray]:
        ...

    def frame_size(self) -> tuple[int, int]:
        ...


def resize_detections(faces: List[FaceDetection],
                      from_size: tuple[int, int],
                      to_size: tuple[int, int]) -> List[FaceDetection]:
    """Scale boxes from frame pixels to display pixels."""
    fw, fh = from_size
    tw, th = to_size
    if fw <= 0 or fh <= 0 or (fw, fh) == (tw, th):
        return [f.model_copy() for f in faces]
    sx, sy = tw / float(fw), th / float(fh)
    out: List[FaceDetection] = []
    for f in faces:
        b = f.box
        out.append(FaceDetection(
            box=Box(x=b.x * sx, y=b.y * sy, width=b.width * sx, height=b.height * sy),
            expressions=dict(f.expressions),
        ))
    return out


class DetectionLoop:
    def __init__(self, detector: ExpressionDetector, interval: float = 0.2):
        self._detector = detector
        self.interval = float(interval)
        self.label: Observable[str] = Observable(name="face.label")
        self.overlay: Observable[OverlayFrame] = Observable(name="face.overlay")
        self._scheduler: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self.ticks = 0
        self.dropped_ticks = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._scheduler is not None and not self._scheduler.done()

    def start(self, video: VideoHandle, display_size: Optional[tuple[int, int]] = None) -> None:
        """Begin sampling; must be called from inside the event loop."""
        if not self._detector.loaded:
            raise DetectorNotLoadedError()
        if self.running:
            logger.debug("[detect] start ignored; already running")
            return
        logger.debug(f"[detect] start interval={self.interval}s display_size={display_size}")
        self._scheduler = asyncio.get_running_loop().create_task(self._schedule(video, display_size))

    async def stop(self) -> None:
        tasks = [t for t in (self._scheduler, self._inflight) if t is not None and not t.done()]
        self._scheduler = None
        self._inflight = None
        for t in tasks:
            t.cancel()
        for t in tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.debug(f"[detect] stopped ticks={self.ticks} dropped={self.dropped_ticks} skipped={self.skipped_ticks}")

    async def _schedule(self, video: VideoHandle, display_size: Optional[tuple[int, int]]) -> None:
        loop = asyncio.get_running_loop()
        while True:
            if self._inflight is not None and not self._inflight.done():
                # previous detector call still running; never overlap
                self.skipped_ticks += 1
            else:
                self._inflight = loop.create_task(self.tick(video, display_size))
            await asyncio.sleep(self.interval)

    async def tick(self, video: VideoHandle, display_size: Optional[tuple[int, int]] = None) -> Optional[str]:
        """Run one sampling cycle; returns the published label, if any."""
        self.ticks += 1
        if not video.ready():
            return None
        try:
            frame, faces = await self._sample(video)
        except DetectorTickError:
            self.dropped_ticks += 1
            logger.exception(f"[detect] tick {self.ticks} dropped")
            return None
        if frame is None or not faces:
            return None

        label = dominant_label(faces[0].expressions)
        if label:
            self.label.set(label)

        shape = getattr(frame, "shape", None)
        frame_size = (int(shape[1]), int(shape[0])) if shape is not None and len(shape) >= 2 else video.frame_size()
        target = display_size or frame_size
        self.overlay.set(OverlayFrame(
            timestamp=time.time(),
            display_size=target,
            faces=resize_detections(faces, frame_size, target),
        ))
        return label

    async def _sample(self, video: VideoHandle):
        try:
            frame = await asyncio.to_thread(video.read)
            if frame is None:
                return None, []
            faces = await self._detector.detect(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise DetectorTickError(f"Detection tick failed: {e}") from e
        return frame, faces
