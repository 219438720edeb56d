class FacialEmotionError(Exception):
    """Base class for startup failures. These are fatal: the app exits."""


class CaptureInitError(FacialEmotionError):
    """The camera could not be opened."""


class ModelInitError(FacialEmotionError):
    """The face detector or the emotion model could not be built."""
