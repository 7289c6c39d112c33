"""
Microphone recording session: buffers recorder chunks while active and
finalizes them into a single AudioPayload on stop.
"""
from __future__ import annotations

import asyncio
import io
import logging
import struct
import threading
from enum import Enum
from typing import Callable, List, Optional, Protocol

import numpy as np
import soundfile as sf

from core.errors import MicrophoneUnavailableError, MoodSenseError
from core.media import MediaSession, MediaStreamManager, MicrophoneTrack
from core.models import AudioPayload, MediaKind

logger = logging.getLogger(__name__)

ChunkListener = Callable[[bytes], None]


class AudioRecorder(Protocol):
    """Emits binary chunks while active; ``stop`` returns after the final chunk."""
    mime_type: str

    def start(self, on_chunk: ChunkListener) -> None:
        ...

    async def stop(self) -> None:
        ...


def wav_stream_header(sample_rate: int, channels: int, bits: int = 16) -> bytes:
    """RIFF/WAVE header with unknown (streaming) sizes, as written by live encoders."""
    block_align = channels * bits // 8
    return b"".join([
        b"RIFF", struct.pack("<I", 0xFFFFFFFF), b"WAVE",
        b"fmt ", struct.pack("<IHHIIHH", 16, 1, channels, sample_rate,
                             sample_rate * block_align, block_align, bits),
        b"data", struct.pack("<I", 0xFFFFFFFF),
    ])


def encode_pcm16(block: np.ndarray, sample_rate: int) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, block, sample_rate, format="RAW", subtype="PCM_16")
    return buf.getvalue()


class SoundDeviceRecorder:
    """
    Records from a live microphone track. Blocks arrive on the PortAudio
    thread and are handed to the event loop with ``call_soon_threadsafe``.
    """
    mime_type = "audio/wav"

    def __init__(self, track: MicrophoneTrack):
        self._track = track
        self._lock = threading.Lock()
        self._active = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_chunk: Optional[ChunkListener] = None

    def start(self, on_chunk: ChunkListener) -> None:
        self._loop = asyncio.get_running_loop()
        self._on_chunk = on_chunk
        on_chunk(wav_stream_header(self._track.sample_rate, self._track.channels))
        with self._lock:
            self._active = True
        self._track.add_listener(self._on_block)

    def _on_block(self, block: np.ndarray) -> None:
        # Encode under the lock so stop() waits for a block already in hand
        with self._lock:
            if not self._active or self._loop is None:
                return
            data = encode_pcm16(block, self._track.sample_rate)
            self._loop.call_soon_threadsafe(self._emit, data)

    def _emit(self, data: bytes) -> None:
        if self._on_chunk is not None:
            self._on_chunk(data)

    def _deactivate(self) -> None:
        with self._lock:
            self._active = False

    async def stop(self) -> None:
        # Stopping the input stream delivers the blocks PortAudio still holds
        await asyncio.to_thread(self._track.stop)
        await asyncio.to_thread(self._deactivate)
        self._track.remove_listener(self._on_block)
        # Emits scheduled before the flag flipped are already queued ahead of us
        await asyncio.sleep(0)
        self._on_chunk = None


def default_recorder(session: MediaSession) -> AudioRecorder:
    track = session.stream.tracks[0]
    return SoundDeviceRecorder(track)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


class RecordingSession:
    def __init__(self,
                 media: MediaStreamManager,
                 recorder_factory: Callable[[MediaSession], AudioRecorder] = default_recorder):
        self._media = media
        self._recorder_factory = recorder_factory
        self.state = RecordingState.IDLE
        self._session: Optional[MediaSession] = None
        self._recorder: Optional[AudioRecorder] = None
        self._chunks: List[bytes] = []

    @property
    def recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    async def start(self) -> None:
        if self.state is not RecordingState.IDLE:
            logger.debug(f"[record] start ignored; state={self.state.value}")
            return
        try:
            session = await asyncio.to_thread(self._media.acquire, MediaKind.AUDIO)
        except MoodSenseError as e:
            logger.exception("[record] microphone acquisition failed")
            raise MicrophoneUnavailableError() from e

        self._session = session
        self._chunks = []
        try:
            self._recorder = self._recorder_factory(session)
            self._recorder.start(self._on_chunk)
        except Exception as e:
            self._release()
            logger.exception("[record] recorder failed to start")
            raise MicrophoneUnavailableError() from e
        self.state = RecordingState.RECORDING
        logger.debug("[record] recording started")

    def _on_chunk(self, chunk: bytes) -> None:
        if chunk:
            self._chunks.append(chunk)

    async def stop(self) -> Optional[AudioPayload]:
        """Flush the recorder and return the payload; no-op (None) while idle."""
        if self.state is not RecordingState.RECORDING:
            return None
        self.state = RecordingState.FINALIZING
        recorder = self._recorder
        try:
            if recorder is not None:
                await recorder.stop()
        finally:
            self._release()
            self.state = RecordingState.IDLE

        mime = getattr(recorder, "mime_type", "application/octet-stream")
        payload = AudioPayload(data=b"".join(self._chunks), mime_type=mime)
        self._chunks = []
        logger.debug(f"[record] finalized bytes={len(payload)}")
        return payload

    async def cancel(self) -> None:
        """Tear down without producing a payload."""
        if self.state is RecordingState.IDLE and self._session is None:
            return
        recorder = self._recorder
        try:
            if recorder is not None and self.state is RecordingState.RECORDING:
                await recorder.stop()
        finally:
            self._release()
            self._chunks = []
            self.state = RecordingState.IDLE

    def _release(self) -> None:
        session, self._session = self._session, None
        self._recorder = None
        self._media.release(session)
