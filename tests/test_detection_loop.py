import asyncio
import pytest

from core.detection_loop import DetectionLoop, resize_detections
from core.errors import DetectorNotLoadedError
from fakes import FakeDetector, FakeTrack, FakeVideoStream, face
from core.models import MediaKind


def _video(ready=True):
    return FakeVideoStream(FakeTrack(MediaKind.VIDEO), ready=ready, size=(64, 48))


def test_tick_publishes_label_and_overlay():
    det = FakeDetector([[face({"neutral": 0.2, "happy": 0.7, "sad": 0.1}, x=8, y=4, w=16, h=12),
                         face({"angry": 1.0})]])
    loop = DetectionLoop(det, interval=0.2)
    labels, overlays = [], []
    loop.label.subscribe(labels.append)
    loop.overlay.subscribe(overlays.append)

    out = asyncio.run(loop.tick(_video(), display_size=(128, 96)))
    assert out == "happy"
    assert labels == ["happy"]
    ov = overlays[0]
    assert ov.display_size == (128, 96)
    # boxes scaled from 64x48 frame to 128x96 display
    assert (ov.faces[0].box.x, ov.faces[0].box.y, ov.faces[0].box.width, ov.faces[0].box.height) == (16, 8, 32, 24)
    assert len(ov.faces) == 2

def test_tick_skips_when_video_not_ready():
    det = FakeDetector()
    loop = DetectionLoop(det)
    video = _video(ready=False)
    assert asyncio.run(loop.tick(video)) is None
    assert det.calls == 0 and video.reads == 0
    assert loop.label.value is None

def test_tick_without_faces_publishes_nothing():
    det = FakeDetector([[]])
    loop = DetectionLoop(det)
    assert asyncio.run(loop.tick(_video())) is None
    assert loop.label.value is None and loop.overlay.value is None

def test_failing_tick_does_not_stop_later_ticks():
    det = FakeDetector([[face({"happy": 0.9})], RuntimeError("bad frame"), [face({"sad": 0.8})]])
    loop = DetectionLoop(det)
    labels = []
    loop.label.subscribe(labels.append)
    video = _video()

    async def three_ticks():
        return [await loop.tick(video) for _ in range(3)]

    assert asyncio.run(three_ticks()) == ["happy", None, "sad"]
    assert labels == ["happy", "sad"]
    assert loop.dropped_ticks == 1

def test_start_before_load_is_caller_error():
    loop = DetectionLoop(FakeDetector(loaded=False))

    async def go():
        loop.start(_video())

    with pytest.raises(DetectorNotLoadedError):
        asyncio.run(go())
    assert not loop.running

def test_start_stop_runs_on_cadence_and_stop_is_idempotent():
    det = FakeDetector()
    loop = DetectionLoop(det, interval=0.01)

    async def run():
        loop.start(_video())
        assert loop.running
        await asyncio.sleep(0.08)
        await loop.stop()
        calls = det.calls
        await asyncio.sleep(0.05)
        await loop.stop()
        return calls

    calls = asyncio.run(run())
    assert calls >= 2
    assert det.calls == calls  # nothing ran after stop
    assert not loop.running
    assert loop.label.value == "neutral"

def test_slow_detector_never_overlaps():
    det = FakeDetector(delay=0.05)
    loop = DetectionLoop(det, interval=0.01)

    async def run():
        loop.start(_video())
        await asyncio.sleep(0.2)
        await loop.stop()

    asyncio.run(run())
    assert det.max_active == 1
    assert loop.skipped_ticks > 0

def test_resize_detections_identity_and_zero_size():
    faces = [face({"happy": 1.0}, x=1, y=2, w=3, h=4)]
    same = resize_detections(faces, (10, 10), (10, 10))
    assert same[0].box == faces[0].box and same[0] is not faces[0]
    assert resize_detections(faces, (0, 0), (10, 10))[0].box == faces[0].box
