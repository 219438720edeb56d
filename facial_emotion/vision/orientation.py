from enum import Enum, IntEnum

import cv2
import numpy as np


class DeviceOrientation(Enum):
    PORTRAIT = "portrait"
    PORTRAIT_UPSIDE_DOWN = "portrait_upside_down"
    LANDSCAPE_LEFT = "landscape_left"
    LANDSCAPE_RIGHT = "landscape_right"
    FACE_UP = "face_up"
    FACE_DOWN = "face_down"
    UNKNOWN = "unknown"


class CameraPosition(Enum):
    FRONT = "front"
    BACK = "back"


class ExifOrientation(IntEnum):
    """How the raw sensor image must be transformed to be displayed upright.

    Values follow the EXIF / TIFF orientation tag: the name says where row 0
    and column 0 of the stored image sit in the upright picture.
    """

    UP = 1              # row 0 top, col 0 left
    UP_MIRRORED = 2     # row 0 top, col 0 right
    DOWN = 3            # row 0 bottom, col 0 right
    DOWN_MIRRORED = 4   # row 0 bottom, col 0 left
    LEFT_MIRRORED = 5   # row 0 left, col 0 top
    RIGHT = 6           # row 0 right, col 0 top
    RIGHT_MIRRORED = 7  # row 0 right, col 0 bottom
    LEFT = 8            # row 0 left, col 0 bottom


# Physical orientations a user can step through at runtime.
CYCLE_ORDER = (
    DeviceOrientation.PORTRAIT,
    DeviceOrientation.LANDSCAPE_LEFT,
    DeviceOrientation.PORTRAIT_UPSIDE_DOWN,
    DeviceOrientation.LANDSCAPE_RIGHT,
)


def resolve_orientation(device: DeviceOrientation, camera: CameraPosition) -> ExifOrientation:
    """Map the device orientation and active camera to an EXIF orientation.

    The front sensor reads out mirrored, so the two landscape cases swap
    depending on which camera is active. Anything that is not one of the
    four physical orientations falls back to portrait (RIGHT).
    """
    front = camera is CameraPosition.FRONT

    if device is DeviceOrientation.PORTRAIT_UPSIDE_DOWN:
        return ExifOrientation.LEFT
    if device is DeviceOrientation.LANDSCAPE_LEFT:
        return ExifOrientation.DOWN if front else ExifOrientation.UP
    if device is DeviceOrientation.LANDSCAPE_RIGHT:
        return ExifOrientation.UP if front else ExifOrientation.DOWN
    return ExifOrientation.RIGHT


def apply_orientation(image: np.ndarray, code: ExifOrientation) -> np.ndarray:
    """Return the upright rendition of a raw sensor image."""
    if code == ExifOrientation.UP:
        return image
    if code == ExifOrientation.UP_MIRRORED:
        return cv2.flip(image, 1)
    if code == ExifOrientation.DOWN:
        return cv2.rotate(image, cv2.ROTATE_180)
    if code == ExifOrientation.DOWN_MIRRORED:
        return cv2.flip(image, 0)
    if code == ExifOrientation.LEFT_MIRRORED:
        return cv2.transpose(image)
    if code == ExifOrientation.RIGHT:
        return cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE)
    if code == ExifOrientation.RIGHT_MIRRORED:
        return cv2.flip(cv2.transpose(image), -1)
    if code == ExifOrientation.LEFT:
        return cv2.rotate(image, cv2.ROTATE_90_COUNTERCLOCKWISE)
    raise ValueError(f"Unknown orientation: {code!r}")


def _upright_point_to_raw(u: int, v: int, code: ExifOrientation, w: int, h: int) -> tuple[int, int]:
    # (u, v) = (col, row) in the upright image; w, h = raw width and height
    if code == ExifOrientation.UP:
        return u, v
    if code == ExifOrientation.UP_MIRRORED:
        return w - 1 - u, v
    if code == ExifOrientation.DOWN:
        return w - 1 - u, h - 1 - v
    if code == ExifOrientation.DOWN_MIRRORED:
        return u, h - 1 - v
    if code == ExifOrientation.LEFT_MIRRORED:
        return v, u
    if code == ExifOrientation.RIGHT:
        return v, h - 1 - u
    if code == ExifOrientation.RIGHT_MIRRORED:
        return w - 1 - v, h - 1 - u
    if code == ExifOrientation.LEFT:
        return w - 1 - v, u
    raise ValueError(f"Unknown orientation: {code!r}")


def upright_box_to_raw(
    box: tuple[int, int, int, int],
    code: ExifOrientation,
    raw_width: int,
    raw_height: int,
) -> tuple[int, int, int, int]:
    """Map an (x1, y1, x2, y2) box of the upright image into raw coordinates.

    Boxes are half-open: x2 and y2 are exclusive.
    """
    x1, y1, x2, y2 = box
    if x2 <= x1 or y2 <= y1:
        return 0, 0, 0, 0

    ax, ay = _upright_point_to_raw(x1, y1, code, raw_width, raw_height)
    bx, by = _upright_point_to_raw(x2 - 1, y2 - 1, code, raw_width, raw_height)
    return min(ax, bx), min(ay, by), max(ax, bx) + 1, max(ay, by) + 1


def _parse(enum_cls, name: str):
    key = name.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return enum_cls(key)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} '{name}' (choose from: {choices})") from None


def parse_device_orientation(name: str) -> DeviceOrientation:
    return _parse(DeviceOrientation, name)


def parse_camera_position(name: str) -> CameraPosition:
    return _parse(CameraPosition, name)
