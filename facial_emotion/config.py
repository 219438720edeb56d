from dataclasses import dataclass


# ==============================
# CONFIG
# ==============================
VIDEO_SOURCE = 0  # 0 = webcam, change to 1 if using USB cam
CAPTURE_WIDTH = 960
CAPTURE_HEIGHT = 720

FACE_BACKEND = "yolo"  # "yolo" or "haar"
MODEL_PATH = "models/yolov8n-face.pt"
CONF_THRESHOLD = 0.5

# Grow each face box by this fraction of its size before cropping.
FACE_PADDING = 0.10

# "center_crop" feeds the largest centred square of the face to the model,
# "scale_fit" feeds the crop as-is.
CROP_AND_SCALE = "center_crop"

# A desktop webcam delivers rows already upright, which is what a back
# camera held in landscape-left reports (EXIF 1).
DEVICE_ORIENTATION = "landscape_left"
CAMERA_POSITION = "back"

DISPLAY_WIDTH = 1280
DISPLAY_HEIGHT = 720
MIRROR_PREVIEW = True

WINDOW_NAME = "Facial Emotion Detection"


@dataclass(frozen=True)
class AppConfig:
    """Everything main_stream needs to build the pipeline."""

    video_source: int | str = VIDEO_SOURCE
    capture_width: int = CAPTURE_WIDTH
    capture_height: int = CAPTURE_HEIGHT
    face_backend: str = FACE_BACKEND
    model_path: str = MODEL_PATH
    conf_threshold: float = CONF_THRESHOLD
    face_padding: float = FACE_PADDING
    crop_and_scale: str = CROP_AND_SCALE
    device_orientation: str = DEVICE_ORIENTATION
    camera_position: str = CAMERA_POSITION
    display_width: int = DISPLAY_WIDTH
    display_height: int = DISPLAY_HEIGHT
    mirror_preview: bool = MIRROR_PREVIEW
    window_name: str = WINDOW_NAME
    log_level: str = "INFO"


def parse_video_source(value: str) -> int | str:
    """Camera index when the value is numeric, otherwise a file path or URL."""
    value = value.strip()
    if value.isdigit():
        return int(value)
    return value
