
"""Run the face mood pipeline with an overlay window.

Usage:
    uvicorn api.main:app --reload  # (separate, for API)
    python scripts/live_overlay.py  # (to see the overlay window)

The camera stays owned by the pipeline; this window only draws the published
boxes, labels and errors on a blank canvas. Press 'q' to quit the window.
"""
import asyncio
import logging

import cv2
import numpy as np

from core.config import Settings
from core.emotion import DeepFaceExpressionDetector
from core.errors import MoodSenseError
from core.live import FaceMoodPipeline
from core.media import DeviceStreamSource, MediaStreamManager
from core.visual import draw_overlays

DISPLAY_SIZE = (640, 480)


async def run(settings: Settings) -> None:
    media = MediaStreamManager(DeviceStreamSource(settings))
    async with FaceMoodPipeline(settings, media, DeepFaceExpressionDetector(settings)) as pipeline:
        try:
            await pipeline.start(display_size=DISPLAY_SIZE)
        except MoodSenseError as e:
            print(e.message)
            return
        w, h = DISPLAY_SIZE
        while True:
            overlay = pipeline.overlay.value
            canvas = np.zeros((h, w, 3), dtype=np.uint8)
            annotated = draw_overlays(canvas,
                                      overlay.faces if overlay is not None else [],
                                      mood=pipeline.label.value,
                                      error=pipeline.error.value)
            cv2.imshow("Face Mood (q to quit)", annotated)
            if (cv2.waitKey(1) & 0xFF) == ord("q"):
                break
            await asyncio.sleep(0.03)
    cv2.destroyAllWindows()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(Settings()))
