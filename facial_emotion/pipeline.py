import logging
import queue
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

from facial_emotion.ui.dispatch import DispatcherClosed, UiDispatcher
from facial_emotion.ui.visualizer import EmotionVisualizer
from facial_emotion.vision.camera import Frame
from facial_emotion.vision.face_detector import FaceImage
from facial_emotion.vision.emotion_detector import EmotionScores
from facial_emotion.vision.orientation import (
    CYCLE_ORDER,
    CameraPosition,
    DeviceOrientation,
    ExifOrientation,
    resolve_orientation,
)

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    def extract(self, frame_bgr: np.ndarray, orientation: ExifOrientation) -> list[FaceImage]:
        ...


class Classifier(Protocol):
    def classify(self, face: FaceImage) -> EmotionScores:
        ...


class OrientationSource:
    """Current device orientation and camera facing.

    current() resolves the code on every call; nothing is cached.
    """

    def __init__(self, device: DeviceOrientation, camera: CameraPosition):
        self._lock = threading.Lock()
        self._device = device
        self._camera = camera

    @property
    def device(self) -> DeviceOrientation:
        with self._lock:
            return self._device

    @property
    def camera(self) -> CameraPosition:
        with self._lock:
            return self._camera

    def set(self, device: DeviceOrientation | None = None, camera: CameraPosition | None = None) -> None:
        with self._lock:
            if device is not None:
                self._device = device
            if camera is not None:
                self._camera = camera

    def current(self) -> ExifOrientation:
        with self._lock:
            return resolve_orientation(self._device, self._camera)

    def cycle_device(self) -> DeviceOrientation:
        with self._lock:
            if self._device in CYCLE_ORDER:
                idx = (CYCLE_ORDER.index(self._device) + 1) % len(CYCLE_ORDER)
            else:
                idx = 0
            self._device = CYCLE_ORDER[idx]
            return self._device

    def toggle_camera(self) -> CameraPosition:
        with self._lock:
            if self._camera is CameraPosition.FRONT:
                self._camera = CameraPosition.BACK
            else:
                self._camera = CameraPosition.FRONT
            return self._camera


@dataclass
class PipelineStats:
    frames: int = 0
    processed: int = 0
    inferences: int = 0
    updates: int = 0
    skipped: Counter = field(default_factory=Counter)

    def skip(self, reason: str) -> None:
        self.skipped[reason] += 1


class EmotionPipeline:
    """Frame -> faces -> emotion scores -> visualizer.

    on_frame() runs on the capture thread, face extraction and inference on
    one background worker, and visualizer updates on the UI thread.
    """

    def __init__(
        self,
        extractor: Extractor,
        classifier: Classifier,
        visualizer: EmotionVisualizer,
        dispatcher: UiDispatcher,
        orientation_source: OrientationSource,
    ):
        self.extractor = extractor
        self.classifier = classifier
        self.visualizer = visualizer
        self.dispatcher = dispatcher
        self.orientation_source = orientation_source
        self.stats = PipelineStats()

        self._work_q: queue.Queue = queue.Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._worker: threading.Thread | None = None
        self._stats_lock = threading.Lock()

    def start(self) -> None:
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, name="emotion-worker", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._worker is not None:
            self._worker.join(timeout=2.0)
            self._worker = None

    def _skip(self, reason: str, frame: Frame) -> None:
        with self._stats_lock:
            self.stats.skip(reason)
        logger.debug("Skipping frame %d: %s", frame.sequence, reason)

    # ---------- capture thread ----------
    def on_frame(self, frame: Frame) -> None:
        with self._stats_lock:
            self.stats.frames += 1

        if frame.pixels is None:
            self._skip("no_pixels", frame)
            return

        orientation = self.orientation_source.current()

        # Keep only the latest request
        try:
            while True:
                self._work_q.get_nowait()
        except queue.Empty:
            pass

        try:
            self._work_q.put_nowait((frame, orientation))
        except queue.Full:
            self._skip("worker_busy", frame)

    # ---------- worker thread ----------
    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                frame, orientation = self._work_q.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                self.process(frame, orientation)
            except DispatcherClosed:
                break

    def process(self, frame: Frame, orientation: ExifOrientation) -> int:
        """Extract and classify the faces of one frame. Returns the number of UI updates."""
        with self._stats_lock:
            self.stats.processed += 1

        try:
            faces = self.extractor.extract(frame.pixels, orientation)
        except Exception as e:
            logger.debug("Face extraction failed: %s", e)
            faces = []

        if not faces:
            self._skip("no_faces", frame)
            return 0

        # Device may have turned since capture.
        orientation = self.orientation_source.current()

        updates = 0
        for face in faces:
            face.orientation = orientation
            emotions = self.classifier.classify(face)
            with self._stats_lock:
                self.stats.inferences += 1

            if not emotions:
                self._skip("no_result", frame)
                continue

            if self.dispatcher.call_sync(self.visualizer.update, emotions, frame.sequence):
                updates += 1

        with self._stats_lock:
            self.stats.updates += updates
        return updates
