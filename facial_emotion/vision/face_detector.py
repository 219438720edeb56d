import logging
from dataclasses import dataclass
from typing import Protocol

import cv2
import numpy as np

from facial_emotion.errors import ModelInitError
from facial_emotion.vision.orientation import ExifOrientation, apply_orientation, upright_box_to_raw

logger = logging.getLogger(__name__)

# (x1, y1, x2, y2, confidence) in the coordinates of the image given to the backend
Detection = tuple[int, int, int, int, float]


@dataclass
class FaceImage:
    """A face cropped from a raw frame, still in sensor orientation."""

    pixels: np.ndarray
    orientation: ExifOrientation
    box: tuple[int, int, int, int]
    confidence: float


class FaceBackend(Protocol):
    def load(self) -> None:
        ...

    def detect(self, image_bgr: np.ndarray) -> list[Detection]:
        ...


def resolve_device() -> str:
    import torch

    return "cuda" if torch.cuda.is_available() else "cpu"


class YoloFaceBackend:
    """YOLOv8-face detector from Ultralytics."""

    def __init__(self, model_path: str, device: str | None = None, conf: float = 0.5):
        self.model_path = model_path
        self.device = device
        self.conf = conf
        self._model = None

    def load(self) -> None:
        from ultralytics import YOLO

        if self.device is None:
            self.device = resolve_device()
        logger.info("Device: %s", self.device)
        self._model = YOLO(self.model_path).to(self.device)

    def detect(self, image_bgr: np.ndarray) -> list[Detection]:
        results = self._model(image_bgr, device=self.device, conf=self.conf, verbose=False)
        if not results or len(results[0].boxes) == 0:
            return []

        boxes = results[0].boxes
        xyxy = boxes.xyxy.cpu().numpy().astype(int)
        confs = boxes.conf.cpu().numpy()
        return [
            (int(x1), int(y1), int(x2), int(y2), float(c))
            for (x1, y1, x2, y2), c in zip(xyxy, confs)
        ]


class HaarFaceBackend:
    """OpenCV frontal-face Haar cascade. No weights to download."""

    def __init__(self, scale_factor: float = 1.1, min_neighbors: int = 5, min_size: int = 48):
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self._cascade = None

    def load(self) -> None:
        path = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
        cascade = cv2.CascadeClassifier(path)
        if cascade.empty():
            raise RuntimeError(f"Could not load Haar cascade: {path}")
        self._cascade = cascade

    def detect(self, image_bgr: np.ndarray) -> list[Detection]:
        gray = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2GRAY)
        faces = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(self.min_size, self.min_size),
        )
        return [(int(x), int(y), int(x + w), int(y + h), 1.0) for (x, y, w, h) in faces]


def build_backend(name: str, model_path: str, conf: float) -> FaceBackend:
    name = name.strip().lower()
    if name == "yolo":
        return YoloFaceBackend(model_path, conf=conf)
    if name == "haar":
        return HaarFaceBackend()
    raise ValueError(f"Unknown face backend '{name}' (choose from: yolo, haar)")


class FaceExtractor:
    """Finds faces in a raw frame and crops them out.

    Detection runs on the upright frame, crops are cut from the raw frame and
    tagged with the orientation so the classifier can upright them itself.
    """

    def __init__(self, backend: FaceBackend, padding: float = 0.0):
        self.backend = backend
        self.padding = padding

    def load(self) -> None:
        try:
            self.backend.load()
        except Exception as e:
            raise ModelInitError(f"Failed to init face detector: {e}") from e

    def extract(self, frame_bgr: np.ndarray, orientation: ExifOrientation) -> list[FaceImage]:
        if frame_bgr is None or frame_bgr.size == 0:
            return []

        raw_h, raw_w = frame_bgr.shape[:2]
        upright = apply_orientation(frame_bgr, orientation)
        h, w = upright.shape[:2]

        faces = []
        for x1, y1, x2, y2, conf in self.backend.detect(upright):
            pad_x = int((x2 - x1) * self.padding)
            pad_y = int((y2 - y1) * self.padding)

            # clamp to frame
            x1, y1 = max(0, x1 - pad_x), max(0, y1 - pad_y)
            x2, y2 = min(w, x2 + pad_x), min(h, y2 + pad_y)
            if x2 <= x1 or y2 <= y1:
                continue

            rx1, ry1, rx2, ry2 = upright_box_to_raw((x1, y1, x2, y2), orientation, raw_w, raw_h)
            crop = frame_bgr[ry1:ry2, rx1:rx2]
            if crop.size == 0:
                continue

            faces.append(FaceImage(
                pixels=crop,
                orientation=orientation,
                box=(rx1, ry1, rx2, ry2),
                confidence=conf,
            ))

        return faces
