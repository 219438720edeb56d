import logging

import cv2
import numpy as np

from facial_emotion.errors import ModelInitError
from facial_emotion.vision.face_detector import FaceImage
from facial_emotion.vision.orientation import apply_orientation

logger = logging.getLogger(__name__)

EmotionScores = dict[str, float]

# DeepFace emotion model labels, in its output order
EMOTION_LABELS = ("angry", "disgust", "fear", "happy", "sad", "surprise", "neutral")

CROP_AND_SCALE_OPTIONS = ("center_crop", "scale_fit")


def _import_deepface():
    from deepface import DeepFace

    return DeepFace


def center_crop(image: np.ndarray) -> np.ndarray:
    """Largest square centred in the image."""
    h, w = image.shape[:2]
    side = min(h, w)
    y0 = (h - side) // 2
    x0 = (w - side) // 2
    return image[y0:y0 + side, x0:x0 + side]


def ranked(scores: EmotionScores) -> list[tuple[str, float]]:
    """Scores as (label, confidence), most confident first."""
    return sorted(scores.items(), key=lambda x: x[1], reverse=True)


class EmotionClassifier:
    def __init__(self, crop_and_scale: str = "center_crop"):
        """
        Wraps the DeepFace emotion model.

        The model is warmed up in load() so a broken install fails at startup
        instead of on the first face.
        """
        if crop_and_scale not in CROP_AND_SCALE_OPTIONS:
            raise ValueError(
                f"Unknown crop_and_scale '{crop_and_scale}' "
                f"(choose from: {', '.join(CROP_AND_SCALE_OPTIONS)})"
            )
        self.crop_and_scale = crop_and_scale
        self._deepface = None

    def load(self) -> None:
        try:
            self._deepface = _import_deepface()
            blank = np.zeros((48, 48, 3), dtype=np.uint8)
            self._analyze(blank)
        except Exception as e:
            self._deepface = None
            raise ModelInitError(f"Failed to init emotion model: {e}") from e
        logger.info("Emotion model ready (crop_and_scale=%s)", self.crop_and_scale)

    def _analyze(self, face_rgb: np.ndarray) -> EmotionScores:
        result = self._deepface.analyze(
            face_rgb,
            actions=["emotion"],
            enforce_detection=False,
            detector_backend="skip",  # face already detected
            silent=True,
        )
        if isinstance(result, list):
            if not result:
                return {}
            result = result[0]

        emotions = result.get("emotion") or {}

        # Convert percentages to 0–1 range
        return {str(k): float(v) / 100.0 for k, v in emotions.items()}

    def classify(self, face: FaceImage) -> EmotionScores:
        """
        Predict emotions from a cropped face image.

        Args:
            face: raw-orientation BGR crop plus its orientation tag

        Returns:
            dict: emotion -> probability (0–1 range), empty when there is no result
        """

        if self._deepface is None:
            raise RuntimeError("EmotionClassifier.load() must be called first")

        if face.pixels is None or face.pixels.size == 0:
            return {}

        try:
            upright = apply_orientation(face.pixels, face.orientation)
            if self.crop_and_scale == "center_crop":
                upright = center_crop(upright)

            # Convert BGR to RGB (DeepFace expects RGB)
            face_rgb = cv2.cvtColor(upright, cv2.COLOR_BGR2RGB)
            return self._analyze(face_rgb)

        except Exception as e:
            logger.debug("Emotion inference failed: %s", e)
            return {}
