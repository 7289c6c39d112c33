"""
Transcript mood classification through an OpenAI-compatible chat completion API.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests

from core.config import Settings
from core.errors import ClassificationError
from core.remote import create_session, error_detail, is_success

logger = logging.getLogger(__name__)

NO_SPEECH_LABEL = "no speech detected"

SYSTEM_INSTRUCTION = (
    "You are an assistant that analyzes the mood of a speaker from a transcript. "
    "Respond with a single word that describes the mood."
)


class MoodClassifier:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.s = settings
        self._session = session if session is not None else create_session(settings)

    async def classify(self, text: str) -> str:
        """
        Return the model's one-word mood for ``text``.

        Blank text never reaches the network and yields NO_SPEECH_LABEL.
        The model's answer is passed through verbatim.
        """
        if not (text or "").strip():
            return NO_SPEECH_LABEL
        if not self.s.OPENAI_API_KEY:
            raise ClassificationError("Mood classifier is not configured")

        body = {
            "model": self.s.OPENAI_MODEL,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": text},
            ],
        }
        logger.debug(f"[classify] model={self.s.OPENAI_MODEL} chars={len(text)}")
        try:
            resp = await asyncio.to_thread(
                self._session.post,
                f"{self.s.OPENAI_BASE_URL}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.s.OPENAI_API_KEY}"},
                timeout=self.s.HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise ClassificationError(f"Failed to classify mood: {e}") from e
        if not is_success(resp):
            raise ClassificationError(f"Failed to classify mood: {error_detail(resp)}")

        try:
            label = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ClassificationError("Failed to classify mood: malformed response") from e
        if label is None:
            raise ClassificationError("Failed to classify mood: empty response")
        return label
