"""
Facial expression detector backed by DeepFace.
"""
# core/emotion.py
from __future__ import annotations
from typing import Dict, List, Optional, Protocol
import asyncio
import logging

import numpy as np

from core.config import Settings
from core.errors import ModelLoadError
from core.labels import normalize_label
from core.models import Box, FaceDetection

logger = logging.getLogger(__name__)

# Tunables to drop detector noise
MIN_BOX = 24           # px; smaller boxes are discarded
MIN_DET_CONF = 0.5     # if backend supplies a score


class ExpressionDetector(Protocol):
    """Opaque frame detector; must be loaded before the first ``detect``."""
    loaded: bool

    async def load(self) -> None:
        ...

    async def detect(self, frame: np.ndarray) -> List[FaceDetection]:
        ...


def _valid_region(r: Dict) -> bool:
    reg = (r or {}).get("region") or {}
    w = int(reg.get("w", 0)); h = int(reg.get("h", 0))
    ok_size = (w >= MIN_BOX and h >= MIN_BOX)
    conf = r.get("face_confidence")
    if conf is None:
        conf = r.get("detector_score", 1.0)
    try:
        conf = float(conf)
    except (TypeError, ValueError):
        conf = 1.0
    return ok_size and conf >= MIN_DET_CONF


def _to_scores(emotion: Optional[Dict]) -> Dict[str, float]:
    """DeepFace reports percentages with its own spellings; map to [0,1] vocabulary."""
    scores: Dict[str, float] = {}
    if not isinstance(emotion, dict):
        return scores
    for raw, value in emotion.items():
        label = normalize_label(str(raw))
        if label is None:
            continue
        scores[label] = min(1.0, max(0.0, float(value) / 100.0))
    return scores


def parse_analysis(result) -> List[FaceDetection]:
    """Turn a ``DeepFace.analyze`` result (dict or list) into face detections."""
    results = result if isinstance(result, list) else ([result] if isinstance(result, dict) else [])
    faces: List[FaceDetection] = []
    for r in results:
        if not _valid_region(r):
            continue
        reg = r.get("region") or {}
        faces.append(FaceDetection(
            box=Box(x=float(reg.get("x", 0)), y=float(reg.get("y", 0)),
                    width=float(reg.get("w", 0)), height=float(reg.get("h", 0))),
            expressions=_to_scores(r.get("emotion")),
        ))
    return faces


class DeepFaceExpressionDetector:
    """
    Lazily imports DeepFace and warms the emotion model in ``load()`` so the
    first live tick does not pay for model construction.
    """

    def __init__(self, settings: Settings):
        self.s = settings
        self.loaded = False
        self._deepface = None

    async def load(self) -> None:
        if self.loaded:
            return
        try:
            await asyncio.to_thread(self._load_sync)
        except Exception as e:
            logger.exception("[emotion] model load failed")
            raise ModelLoadError() from e
        self.loaded = True
        logger.debug("[emotion] models loaded")

    def _load_sync(self) -> None:
        # Heavy TF stack; only imported when the face pipeline starts
        from deepface import DeepFace
        DeepFace.analyze(
            np.zeros((48, 48, 3), dtype=np.uint8),
            actions=["emotion"],
            enforce_detection=False,
            detector_backend="skip",
        )
        self._deepface = DeepFace

    async def detect(self, frame: np.ndarray) -> List[FaceDetection]:
        if self._deepface is None:
            raise ModelLoadError("Detector used before load()")
        result = await asyncio.to_thread(
            self._deepface.analyze,
            frame,
            actions=["emotion"],
            enforce_detection=False,
            detector_backend=self.s.DETECTOR_BACKEND,
        )
        return parse_analysis(result)
