import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

import cv2
import numpy as np

from facial_emotion.errors import CaptureInitError
from facial_emotion.vision.orientation import CameraPosition

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """One captured image. pixels is None when the read failed."""

    pixels: np.ndarray | None
    timestamp: float
    sequence: int


class CameraCapture:
    """Owns the cv2.VideoCapture and a producer thread delivering frames."""

    def __init__(
        self,
        source: int | str = 0,
        width: int | None = None,
        height: int | None = None,
        position: CameraPosition = CameraPosition.FRONT,
        buffer_size: int = 1,
    ):
        self.source = source
        self.width = width
        self.height = height
        self.position = position
        self.buffer_size = buffer_size

        self._cap = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._latest: Frame | None = None
        self._sequence = 0

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> None:
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            cap.release()
            raise CaptureInitError(f"Could not open video source: {self.source!r}")

        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        # Keep the camera buffer tiny so frames can't lag behind.
        cap.set(cv2.CAP_PROP_BUFFERSIZE, self.buffer_size)

        self._cap = cap
        logger.info("Capture opened: source=%r position=%s", self.source, self.position.value)

    def start(self, on_frame: Callable[[Frame], None]) -> None:
        if not self.is_open:
            raise CaptureInitError("open() must succeed before start()")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, args=(on_frame,), name="capture", daemon=True
        )
        self._thread.start()

    def _run(self, on_frame: Callable[[Frame], None]) -> None:
        while not self._stop_event.is_set():
            ret, pixels = self._cap.read()
            self._sequence += 1
            frame = Frame(
                pixels=pixels if ret else None,
                timestamp=time.monotonic(),
                sequence=self._sequence,
            )

            if frame.pixels is not None:
                with self._lock:
                    self._latest = frame

            on_frame(frame)

            if not ret:
                time.sleep(0.05)

    def latest(self) -> Frame | None:
        """Most recent frame that carried pixels, for the preview."""
        with self._lock:
            return self._latest

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
