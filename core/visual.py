
"""Overlay rendering for the face pipeline.

- draw_overlays: draw detection boxes with their dominant expression and score,
  plus an optional mood banner or error message.

Pure function of the published OverlayFrame; it never touches pipeline state.
"""
from __future__ import annotations
import cv2
import numpy as np
from typing import List, Optional, Tuple

from core.labels import dominant_label
from core.models import FaceDetection

def draw_overlays(frame: np.ndarray,
                  faces: List[FaceDetection] | None = None,
                  mood: Optional[str] = None,
                  error: Optional[str] = None,
                  color: Tuple[int, int, int] = (136, 148, 13)) -> np.ndarray:
    """Draw bounding boxes and expression labels on a frame.

    Args:
        frame: BGR image
        faces: detections already resized to this frame's dimensions
        mood: current dominant label, drawn as a banner
        error: user-facing error; when set nothing else is drawn
        color: BGR color for rectangles (teal)

    Returns:
        Annotated copy of the frame
    """
    out = frame.copy()
    h, w = out.shape[:2]

    if faces is None:
        faces = []

    if error:
        cv2.putText(out, error, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 255), 2, cv2.LINE_AA)
        return out

    for face in faces:
        b = face.box
        x, y, fw, fh = int(b.x), int(b.y), int(b.width), int(b.height)
        # clamp to image bounds
        x = max(0, min(x, w-1)); y = max(0, min(y, h-1))
        fw = max(0, min(fw, w-x)); fh = max(0, min(fh, h-y))

        cv2.rectangle(out, (x, y), (x+fw, y+fh), color, 2)
        label = dominant_label(face.expressions)
        if label:
            text = f"{label} ({face.expressions[label]:.2f})"
            cv2.putText(out, text, (x, max(0, y-10)), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2, cv2.LINE_AA)

    if mood:
        cv2.putText(out, mood.capitalize(), (10, h - 15), cv2.FONT_HERSHEY_SIMPLEX, 1.0, color, 2, cv2.LINE_AA)

    return out
