import time

import numpy as np
import pytest

from facial_emotion import main_stream
from facial_emotion.config import AppConfig, parse_video_source
from facial_emotion.errors import CaptureInitError, ModelInitError
from facial_emotion.main_stream import App, config_from_args, main
from facial_emotion.vision import camera as camera_mod
from facial_emotion.vision.camera import CameraCapture
from facial_emotion.vision.orientation import CameraPosition, ExifOrientation


class FakeVideoCapture:
    opened = True

    def __init__(self, source):
        self.source = source
        self.props = {}
        self.released = False
        self.reads = 0

    def isOpened(self):
        return self.opened and not self.released

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def read(self):
        self.reads += 1
        time.sleep(0.005)
        if self.reads % 3 == 0:
            return False, None
        return True, np.full((4, 4, 3), self.reads, dtype=np.uint8)

    def release(self):
        self.released = True


class ClosedVideoCapture(FakeVideoCapture):
    opened = False


def test_capture_open_failure(monkeypatch):
    monkeypatch.setattr(camera_mod.cv2, "VideoCapture", ClosedVideoCapture)
    with pytest.raises(CaptureInitError):
        CameraCapture("missing.mp4").open()


def test_capture_delivers_frames(monkeypatch):
    monkeypatch.setattr(camera_mod.cv2, "VideoCapture", FakeVideoCapture)
    cap = CameraCapture(0, 640, 480)
    cap.open()

    frames = []
    cap.start(frames.append)
    deadline = time.monotonic() + 5.0
    while len(frames) < 6 and time.monotonic() < deadline:
        time.sleep(0.01)
    cap.stop()

    assert len(frames) >= 6
    seqs = [f.sequence for f in frames]
    assert seqs == sorted(seqs)
    assert any(f.pixels is None for f in frames)
    assert cap.latest().pixels is not None
    assert not cap.is_open


def test_start_requires_open():
    with pytest.raises(CaptureInitError):
        CameraCapture(0).start(lambda frame: None)


def test_main_exits_when_capture_fails(monkeypatch):
    monkeypatch.setattr(camera_mod.cv2, "VideoCapture", ClosedVideoCapture)
    with pytest.raises(SystemExit) as exc:
        main(["--source", "missing.mp4", "--backend", "haar"])
    assert exc.value.code == 1


class OkCapture:
    position = CameraPosition.BACK

    def __init__(self):
        self.stopped = False

    def open(self):
        pass

    def stop(self):
        self.stopped = True


class BrokenModel:
    def load(self):
        raise ModelInitError("no weights")


class OkModel:
    def __init__(self):
        self.loaded = False

    def load(self):
        self.loaded = True


def test_model_failure_is_fatal():
    app = App(AppConfig(), capture=OkCapture(), extractor=OkModel(), classifier=BrokenModel())
    with pytest.raises(ModelInitError):
        app.init()


def test_main_exits_when_model_fails(monkeypatch):
    capture = OkCapture()
    monkeypatch.setattr(main_stream, "CameraCapture", lambda *a, **kw: capture)
    monkeypatch.setattr(main_stream, "EmotionClassifier", lambda *a, **kw: BrokenModel())
    monkeypatch.setattr(main_stream, "FaceExtractor", lambda *a, **kw: OkModel())

    with pytest.raises(SystemExit) as exc:
        main(["--backend", "haar"])
    assert exc.value.code == 1
    assert capture.stopped


def test_invalid_orientation_exits():
    with pytest.raises(SystemExit) as exc:
        main(["--orientation", "sideways"])
    assert exc.value.code == 2


def test_keys():
    capture = OkCapture()
    app = App(AppConfig(device_orientation="portrait", camera_position="front"),
              capture=capture, extractor=OkModel(), classifier=OkModel())

    assert app.orientation.current() is ExifOrientation.RIGHT
    assert app.handle_key(ord("o"))
    assert app.orientation.current() is ExifOrientation.DOWN
    assert app.handle_key(ord("c"))
    assert capture.position is CameraPosition.BACK
    assert app.orientation.current() is ExifOrientation.UP
    assert app.handle_key(-1)
    assert not app.handle_key(ord("q"))


def test_config_from_args():
    cfg = config_from_args(["--source", "clip.mp4", "--crop", "scale_fit", "--no-mirror"])
    assert cfg.video_source == "clip.mp4"
    assert cfg.crop_and_scale == "scale_fit"
    assert cfg.mirror_preview is False
    assert parse_video_source(" 1 ") == 1
