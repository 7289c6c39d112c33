"""
Device stream acquisition and release.

Camera frames come from OpenCV, microphone blocks from sounddevice. Both are
hidden behind ``StreamSource`` so tests can hand in fake devices.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

import cv2
import numpy as np

from core.config import Settings
from core.errors import DeviceUnavailableError, PermissionDeniedError
from core.models import MediaKind

logger = logging.getLogger(__name__)


class MediaTrack(Protocol):
    kind: MediaKind

    def stop(self) -> None:
        ...


class MediaStream:
    """A set of live tracks returned by a StreamSource."""

    def __init__(self, kind: MediaKind, tracks: List[MediaTrack]):
        self.kind = kind
        self.tracks = tracks

    def stop(self) -> None:
        for track in self.tracks:
            track.stop()


class StreamSource(Protocol):
    """Capability that opens device streams (camera/microphone)."""

    def open(self, kind: MediaKind) -> MediaStream:
        ...


# -----------------------------------------------------------------------------
# OpenCV camera
# -----------------------------------------------------------------------------
class CameraTrack:
    kind = MediaKind.VIDEO

    def __init__(self, cap: cv2.VideoCapture):
        self._cap = cap
        self._lock = threading.Lock()
        self.stopped = False

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if self.stopped:
                return None
            ok, frame = self._cap.read()
        return frame if ok else None

    def ready(self) -> bool:
        return (not self.stopped) and bool(self._cap.isOpened())

    def frame_size(self) -> tuple[int, int]:
        w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        return w, h

    def stop(self) -> None:
        with self._lock:
            if self.stopped:
                return
            self.stopped = True
            self._cap.release()
        logger.debug("[media] camera track stopped")


class CameraStream(MediaStream):
    """Camera stream that the detection loop can sample frames from."""

    def __init__(self, track: CameraTrack):
        super().__init__(MediaKind.VIDEO, [track])
        self.track = track

    def ready(self) -> bool:
        return self.track.ready()

    def read(self) -> Optional[np.ndarray]:
        return self.track.read()

    def frame_size(self) -> tuple[int, int]:
        return self.track.frame_size()


# -----------------------------------------------------------------------------
# sounddevice microphone
# -----------------------------------------------------------------------------
BlockListener = Callable[[np.ndarray], None]


class MicrophoneTrack:
    """
    Wraps a running ``sd.InputStream``; audio blocks fan out to listeners
    from the PortAudio callback thread.
    """
    kind = MediaKind.AUDIO

    def __init__(self, input_stream, sample_rate: int, channels: int, blocksize: int):
        self.sample_rate = sample_rate
        self.channels = channels
        self._listeners: List[BlockListener] = []
        self.stopped = False
        self._stream = input_stream(
            callback=self._callback,
            channels=channels,
            samplerate=sample_rate,
            blocksize=blocksize,
            dtype="float32",
        )
        self._stream.start()

    def add_listener(self, listener: BlockListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BlockListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.debug(f"[media] input status={status}")
        block = indata.copy()
        for listener in list(self._listeners):
            listener(block)

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        try:
            self._stream.stop()
        finally:
            self._stream.close()
        logger.debug("[media] microphone track stopped")


class DeviceStreamSource:
    """Opens the real camera (OpenCV) and microphone (sounddevice)."""

    def __init__(self, settings: Settings):
        self.s = settings

    def open(self, kind: MediaKind) -> MediaStream:
        if kind is MediaKind.VIDEO:
            return self._open_camera()
        return self._open_microphone()

    def _open_camera(self) -> CameraStream:
        try:
            cap = cv2.VideoCapture(self.s.CAMERA_INDEX)
        except PermissionError as e:
            raise PermissionDeniedError("Camera access denied") from e
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailableError(f"Could not open camera index {self.s.CAMERA_INDEX}")
        return CameraStream(CameraTrack(cap))

    def _open_microphone(self) -> MediaStream:
        blocksize = max(1, int(self.s.AUDIO_SAMPLE_RATE * self.s.AUDIO_BLOCK_SECONDS))
        # Lazy import: sounddevice raises OSError at import when PortAudio is missing
        try:
            import sounddevice as sd
        except OSError as e:
            raise DeviceUnavailableError(f"Microphone unavailable: {e}") from e
        try:
            track = MicrophoneTrack(sd.InputStream, self.s.AUDIO_SAMPLE_RATE, self.s.AUDIO_CHANNELS, blocksize)
        except PermissionError as e:
            raise PermissionDeniedError("Microphone access denied") from e
        except (sd.PortAudioError, OSError, ValueError) as e:
            raise DeviceUnavailableError(f"Microphone unavailable: {e}") from e
        return MediaStream(MediaKind.AUDIO, [track])


# -----------------------------------------------------------------------------
# Manager
# -----------------------------------------------------------------------------
@dataclass
class MediaSession:
    kind: MediaKind
    stream: MediaStream
    acquired_at: float = field(default_factory=time.time)
    released: bool = False


class MediaStreamManager:
    """
    Single owner of device streams for one pipeline instance.

    At most one active session per kind. ``release`` is idempotent and the
    manager releases everything on exit when used as a (async) context manager.
    """

    def __init__(self, source: StreamSource):
        self._source = source
        self._active: Dict[MediaKind, MediaSession] = {}
        self._lock = threading.Lock()

    def active(self, kind: MediaKind) -> Optional[MediaSession]:
        return self._active.get(kind)

    def acquire(self, kind: MediaKind) -> MediaSession:
        with self._lock:
            if kind in self._active:
                raise DeviceUnavailableError(f"{kind.value} stream already active")
            logger.debug(f"[media] acquire kind={kind.value}")
            try:
                stream = self._source.open(kind)
            except (PermissionDeniedError, DeviceUnavailableError):
                raise
            except PermissionError as e:
                raise PermissionDeniedError(f"{kind.value} access denied") from e
            except OSError as e:
                raise DeviceUnavailableError(f"{kind.value} device unavailable: {e}") from e
            session = MediaSession(kind=kind, stream=stream)
            self._active[kind] = session
            return session

    def release(self, session: Optional[MediaSession]) -> None:
        if session is None:
            return
        with self._lock:
            if session.released:
                return
            session.released = True
            if self._active.get(session.kind) is session:
                del self._active[session.kind]
        try:
            session.stream.stop()
        finally:
            logger.debug(f"[media] released kind={session.kind.value}")

    def release_all(self) -> None:
        for session in list(self._active.values()):
            self.release(session)

    def __enter__(self) -> "MediaStreamManager":
        return self

    def __exit__(self, *exc) -> None:
        self.release_all()

    async def __aenter__(self) -> "MediaStreamManager":
        return self

    async def __aexit__(self, *exc) -> None:
        self.release_all()
