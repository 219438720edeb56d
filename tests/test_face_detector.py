import numpy as np
import pytest

from facial_emotion.errors import ModelInitError
from facial_emotion.vision.face_detector import (
    FaceExtractor,
    HaarFaceBackend,
    YoloFaceBackend,
    build_backend,
)
from facial_emotion.vision.orientation import ExifOrientation, apply_orientation


class FakeBackend:
    def __init__(self, boxes, fail_load=False):
        self.boxes = boxes
        self.fail_load = fail_load
        self.seen_shapes = []

    def load(self):
        if self.fail_load:
            raise OSError("weights not found")

    def detect(self, image_bgr):
        self.seen_shapes.append(image_bgr.shape)
        return list(self.boxes)


def _frame(h=40, w=60):
    rng = np.random.default_rng(1)
    return rng.integers(0, 255, size=(h, w, 3), dtype=np.uint8)


def test_no_faces_returns_empty_list():
    extractor = FaceExtractor(FakeBackend([]))
    assert extractor.extract(_frame(), ExifOrientation.UP) == []


def test_empty_frame_is_skipped():
    backend = FakeBackend([(0, 0, 5, 5, 0.9)])
    extractor = FaceExtractor(backend)
    assert extractor.extract(np.zeros((0, 0, 3), dtype=np.uint8), ExifOrientation.UP) == []
    assert backend.seen_shapes == []


def test_crops_every_face_and_clamps():
    frame = _frame()
    extractor = FaceExtractor(FakeBackend([(10, 5, 30, 25, 0.9), (50, 30, 80, 60, 0.7)]))
    faces = extractor.extract(frame, ExifOrientation.UP)

    assert len(faces) == 2
    assert faces[0].box == (10, 5, 30, 25)
    np.testing.assert_array_equal(faces[0].pixels, frame[5:25, 10:30])
    assert faces[1].box == (50, 30, 60, 40)
    assert faces[1].confidence == pytest.approx(0.7)
    assert all(f.orientation is ExifOrientation.UP for f in faces)


def test_box_outside_frame_is_dropped():
    extractor = FaceExtractor(FakeBackend([(100, 100, 120, 120, 0.9)]))
    assert extractor.extract(_frame(), ExifOrientation.UP) == []


def test_padding_grows_box():
    extractor = FaceExtractor(FakeBackend([(20, 10, 40, 30, 0.9)]), padding=0.25)
    (face,) = extractor.extract(_frame(), ExifOrientation.UP)
    assert face.box == (15, 5, 45, 35)


def test_detects_on_upright_frame_and_crops_raw():
    frame = _frame()
    backend = FakeBackend([(5, 10, 25, 40, 0.8)])
    extractor = FaceExtractor(backend)

    (face,) = extractor.extract(frame, ExifOrientation.RIGHT)

    # rotated 90 degrees before detection
    assert backend.seen_shapes == [(60, 40, 3)]
    assert face.orientation is ExifOrientation.RIGHT
    upright = apply_orientation(frame, ExifOrientation.RIGHT)
    np.testing.assert_array_equal(
        apply_orientation(np.ascontiguousarray(face.pixels), ExifOrientation.RIGHT),
        upright[10:40, 5:25],
    )


def test_load_failure_is_model_init_error():
    extractor = FaceExtractor(FakeBackend([], fail_load=True))
    with pytest.raises(ModelInitError, match="weights not found"):
        extractor.load()


def test_build_backend():
    assert isinstance(build_backend("YOLO", "m.pt", 0.4), YoloFaceBackend)
    assert isinstance(build_backend("haar", "m.pt", 0.4), HaarFaceBackend)
    with pytest.raises(ValueError):
        build_backend("mtcnn", "m.pt", 0.4)


def test_haar_backend_finds_nothing_in_blank_image():
    backend = HaarFaceBackend()
    backend.load()
    assert backend.detect(np.zeros((120, 160, 3), dtype=np.uint8)) == []
