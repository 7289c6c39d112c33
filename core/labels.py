"""
Expression label vocabulary and reductions over score mappings.
"""
from __future__ import annotations
from typing import Dict, List, Mapping, Optional

# Fixed vocabulary published by the face pipeline
EXPRESSION_LABELS: List[str] = [
    "neutral",
    "happy",
    "sad",
    "angry",
    "fearful",
    "disgusted",
    "surprised",
]

# Detector label spellings -> vocabulary
_ALIASES: Dict[str, str] = {
    "happiness": "happy",
    "sadness": "sad",
    "anger": "angry",
    "fear": "fearful",
    "scared": "fearful",
    "disgust": "disgusted",
    "surprise": "surprised",
}

# Moods the face renderer can animate
_ANIMATION_STATES: Dict[str, str] = {
    "happy": "happy",
    "sad": "sad",
    "angry": "angry",
    "neutral": "neutral",
    "surprised": "happy",
    "fearful": "sad",
    "disgusted": "angry",
}


def normalize_label(label: str) -> Optional[str]:
    """Map a detector label onto the vocabulary; None if it is not one of ours."""
    key = (label or "").strip().lower()
    key = _ALIASES.get(key, key)
    return key if key in EXPRESSION_LABELS else None


def dominant_label(scores: Mapping[str, float]) -> Optional[str]:
    """
    Arg-max over a score mapping.

    Ties go to the label seen first in the mapping's iteration order,
    so ``{"a": 0.9, "b": 0.9}`` gives ``"a"``. Empty mappings give None.
    """
    best: Optional[str] = None
    best_score = float("-inf")
    for label, score in scores.items():
        if score > best_score:
            best, best_score = label, score
    return best


def map_mood_to_animation_state(mood: Optional[str]) -> str:
    return _ANIMATION_STATES.get((mood or "").lower(), "neutral")
