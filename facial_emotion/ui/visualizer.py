import logging

import cv2
import numpy as np

from facial_emotion.vision.emotion_detector import EMOTION_LABELS, EmotionScores, ranked

logger = logging.getLogger(__name__)

# BGR
EMOTION_COLORS = {
    "angry": (0, 0, 255),
    "disgust": (0, 128, 0),
    "fear": (128, 0, 128),
    "happy": (0, 255, 255),
    "sad": (255, 0, 0),
    "surprise": (0, 165, 255),
    "neutral": (160, 160, 160),
}
DEFAULT_COLOR = (255, 255, 255)

BAR_W = 180
BAR_H = 16
BAR_GAP = 6
MARGIN = 20


class EmotionVisualizer:
    """Holds the latest emotion scores and draws them as bars."""

    def __init__(self):
        self._scores: EmotionScores = {}
        self._sequence = -1

    @property
    def scores(self) -> EmotionScores:
        return dict(self._scores)

    @property
    def sequence(self) -> int:
        return self._sequence

    def update(self, scores: EmotionScores, sequence: int) -> bool:
        """Replace the displayed scores unless they come from an older frame."""
        if not scores:
            return False
        if sequence < self._sequence:
            logger.debug("Dropping stale scores (seq %d < %d)", sequence, self._sequence)
            return False

        self._scores = dict(scores)
        self._sequence = sequence
        return True

    def labels(self) -> list[str]:
        known = [label for label in EMOTION_LABELS if label in self._scores]
        extra = sorted(label for label in self._scores if label not in EMOTION_LABELS)
        return known + extra

    def render(self, image: np.ndarray) -> np.ndarray:
        if not self._scores:
            cv2.putText(image, "Emotion: --", (MARGIN, MARGIN + 20),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.8, DEFAULT_COLOR, 2)
            return image

        top_label, top_conf = ranked(self._scores)[0]
        cv2.putText(image, f"Emotion: {top_label.upper()} ({top_conf:.2f})", (MARGIN, MARGIN + 20),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, EMOTION_COLORS.get(top_label, DEFAULT_COLOR), 2)

        y = MARGIN + 40
        for label in self.labels():
            conf = min(1.0, max(0.0, self._scores[label]))
            color = EMOTION_COLORS.get(label, DEFAULT_COLOR)

            # Background
            cv2.rectangle(image, (MARGIN, y), (MARGIN + BAR_W, y + BAR_H), (40, 40, 40), -1)
            # Fill
            fill_w = int(BAR_W * conf)
            if fill_w > 0:
                cv2.rectangle(image, (MARGIN, y), (MARGIN + fill_w, y + BAR_H), color, -1)
            cv2.putText(image, f"{label} {conf:.2f}", (MARGIN + BAR_W + 10, y + BAR_H - 3),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)

            y += BAR_H + BAR_GAP

        return image


def aspect_fill(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Scale to cover width x height keeping the aspect ratio, then crop the centre."""
    h, w = image.shape[:2]
    scale = max(width / w, height / h)
    new_w = max(width, int(round(w * scale)))
    new_h = max(height, int(round(h * scale)))
    resized = cv2.resize(image, (new_w, new_h))

    x0 = (new_w - width) // 2
    y0 = (new_h - height) // 2
    return resized[y0:y0 + height, x0:x0 + width]


class PreviewWindow:
    """OpenCV window showing the live feed with the emotion overlay."""

    def __init__(self, title: str, width: int, height: int, mirror: bool = True):
        self.title = title
        self.width = width
        self.height = height
        self.mirror = mirror
        self._opened = False

    def open(self) -> None:
        cv2.namedWindow(self.title, cv2.WINDOW_AUTOSIZE)
        self._opened = True

    def compose(self, frame_bgr: np.ndarray | None, visualizer: EmotionVisualizer,
                status: str = "") -> np.ndarray:
        if frame_bgr is None:
            canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        else:
            canvas = aspect_fill(frame_bgr, self.width, self.height)
            if self.mirror:
                canvas = cv2.flip(canvas, 1)  # horizontal flip (mirror correction)
            else:
                canvas = canvas.copy()

        visualizer.render(canvas)
        if status:
            cv2.putText(canvas, status, (MARGIN, self.height - MARGIN),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 255), 2)
        return canvas

    def show(self, canvas: np.ndarray) -> int:
        """Display a composed frame; returns the key pressed or -1."""
        cv2.imshow(self.title, canvas)
        key = cv2.waitKey(1)
        return key & 0xFF if key >= 0 else -1

    def visible(self) -> bool:
        if not self._opened:
            return False
        return cv2.getWindowProperty(self.title, cv2.WND_PROP_VISIBLE) >= 1

    def close(self) -> None:
        if self._opened:
            cv2.destroyWindow(self.title)
            self._opened = False
