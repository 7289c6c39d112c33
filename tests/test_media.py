
import sys, types
import numpy as np
import pytest

import core.media as media
from core.errors import DeviceUnavailableError, PermissionDeniedError
from core.media import MediaStreamManager, DeviceStreamSource
from core.models import MediaKind
from fakes import FakeSource


def test_acquire_release_stops_every_track(fake_source):
    mgr = MediaStreamManager(fake_source)
    video = mgr.acquire(MediaKind.VIDEO)
    audio = mgr.acquire(MediaKind.AUDIO)
    assert len(fake_source.live_tracks()) == 2
    assert mgr.active(MediaKind.VIDEO) is video

    mgr.release(video)
    mgr.release(audio)
    assert fake_source.live_tracks() == []
    assert all(t.stop_calls == 1 for t in fake_source.tracks)

def test_release_is_idempotent(fake_source):
    mgr = MediaStreamManager(fake_source)
    s = mgr.acquire(MediaKind.AUDIO)
    mgr.release(s)
    mgr.release(s)
    mgr.release(None)
    assert fake_source.tracks[0].stop_calls == 1
    assert s.released

def test_one_active_stream_per_kind(fake_source):
    mgr = MediaStreamManager(fake_source)
    s = mgr.acquire(MediaKind.VIDEO)
    with pytest.raises(DeviceUnavailableError):
        mgr.acquire(MediaKind.VIDEO)
    mgr.release(s)
    # kind is free again after release
    s2 = mgr.acquire(MediaKind.VIDEO)
    assert s2 is not s
    mgr.release(s2)

def test_permission_and_device_errors_are_distinct():
    denied = MediaStreamManager(FakeSource(error=PermissionError("denied by user")))
    with pytest.raises(PermissionDeniedError):
        denied.acquire(MediaKind.AUDIO)
    missing = MediaStreamManager(FakeSource(error=OSError("no such device")))
    with pytest.raises(DeviceUnavailableError):
        missing.acquire(MediaKind.AUDIO)
    assert denied.active(MediaKind.AUDIO) is None

def test_context_manager_releases_everything(fake_source):
    with MediaStreamManager(fake_source) as mgr:
        mgr.acquire(MediaKind.VIDEO)
        mgr.acquire(MediaKind.AUDIO)
    assert fake_source.live_tracks() == []


class DummyCap:
    def __init__(self, opened=True):
        self.opened = opened
        self.released = 0
    def isOpened(self): return self.opened and not self.released
    def read(self): return True, np.zeros((4, 6, 3), dtype=np.uint8)
    def get(self, code): return 6.0 if code == media.cv2.CAP_PROP_FRAME_WIDTH else 4.0
    def release(self): self.released += 1


def test_device_source_camera(monkeypatch, settings):
    cap = DummyCap()
    monkeypatch.setattr(media.cv2, "VideoCapture", lambda idx: cap)
    stream = DeviceStreamSource(settings).open(MediaKind.VIDEO)
    assert stream.ready()
    assert stream.read().shape == (4, 6, 3)
    assert stream.frame_size() == (6, 4)
    stream.stop()
    stream.stop()
    assert cap.released == 1
    assert stream.read() is None and not stream.ready()

def test_device_source_camera_missing(monkeypatch, settings):
    monkeypatch.setattr(media.cv2, "VideoCapture", lambda idx: DummyCap(opened=False))
    with pytest.raises(DeviceUnavailableError):
        DeviceStreamSource(settings).open(MediaKind.VIDEO)


class PortAudioError(Exception):
    pass

class DummyInputStream:
    instances = []
    def __init__(self, callback, channels, samplerate, blocksize, dtype):
        self.callback = callback
        self.started = self.stopped = self.closed = False
        DummyInputStream.instances.append(self)
    def start(self): self.started = True
    def stop(self): self.stopped = True
    def close(self): self.closed = True


def test_device_source_microphone(monkeypatch, settings):
    monkeypatch.setitem(sys.modules, "sounddevice",
                        types.SimpleNamespace(InputStream=DummyInputStream, PortAudioError=PortAudioError))
    stream = DeviceStreamSource(settings).open(MediaKind.AUDIO)
    track = stream.tracks[0]
    blocks = []
    track.add_listener(blocks.append)
    pa = DummyInputStream.instances[-1]
    assert pa.started
    pa.callback(np.ones((4, 1), dtype="float32"), 4, None, None)
    assert len(blocks) == 1
    stream.stop()
    stream.stop()
    assert pa.stopped and pa.closed

def test_device_source_microphone_unavailable(monkeypatch, settings):
    def no_device(**kwargs):
        raise PortAudioError("Error querying device -1")
    monkeypatch.setitem(sys.modules, "sounddevice",
                        types.SimpleNamespace(InputStream=no_device, PortAudioError=PortAudioError))
    with pytest.raises(DeviceUnavailableError):
        DeviceStreamSource(settings).open(MediaKind.AUDIO)
