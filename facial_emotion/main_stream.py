import argparse
import logging
import sys
import time

from facial_emotion import config
from facial_emotion.config import AppConfig, parse_video_source
from facial_emotion.errors import FacialEmotionError
from facial_emotion.pipeline import EmotionPipeline, OrientationSource
from facial_emotion.ui.dispatch import UiDispatcher
from facial_emotion.ui.visualizer import EmotionVisualizer, PreviewWindow
from facial_emotion.vision.camera import CameraCapture
from facial_emotion.vision.emotion_detector import CROP_AND_SCALE_OPTIONS, EmotionClassifier
from facial_emotion.vision.face_detector import FaceExtractor, build_backend
from facial_emotion.vision.orientation import (
    CameraPosition,
    DeviceOrientation,
    parse_camera_position,
    parse_device_orientation,
)

logger = logging.getLogger("facial_emotion")

# Optional: set True to log timing once per second
DEBUG_TIMING = False


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Live facial emotion recognition from a camera stream.")
    p.add_argument("--source", default=str(config.VIDEO_SOURCE),
                   help="Camera index or video file / stream URL")
    p.add_argument("--width", type=int, default=config.CAPTURE_WIDTH)
    p.add_argument("--height", type=int, default=config.CAPTURE_HEIGHT)
    p.add_argument("--backend", choices=("yolo", "haar"), default=config.FACE_BACKEND,
                   help="Face detector")
    p.add_argument("--model", default=config.MODEL_PATH, help="YOLO face model weights")
    p.add_argument("--conf", type=float, default=config.CONF_THRESHOLD)
    p.add_argument("--padding", type=float, default=config.FACE_PADDING)
    p.add_argument("--crop", choices=CROP_AND_SCALE_OPTIONS, default=config.CROP_AND_SCALE)
    p.add_argument("--orientation", default=config.DEVICE_ORIENTATION,
                   help=", ".join(o.value for o in DeviceOrientation))
    p.add_argument("--camera", default=config.CAMERA_POSITION,
                   help=", ".join(c.value for c in CameraPosition))
    p.add_argument("--no-mirror", action="store_true", help="Do not mirror the preview")
    p.add_argument("--log-level", default="INFO")
    return p


def config_from_args(argv=None) -> AppConfig:
    args = build_parser().parse_args(argv)
    return AppConfig(
        video_source=parse_video_source(args.source),
        capture_width=args.width,
        capture_height=args.height,
        face_backend=args.backend,
        model_path=args.model,
        conf_threshold=args.conf,
        face_padding=args.padding,
        crop_and_scale=args.crop,
        device_orientation=args.orientation,
        camera_position=args.camera,
        mirror_preview=not args.no_mirror,
        log_level=args.log_level,
    )


class App:
    """Builds every component, runs the UI loop on the calling thread."""

    def __init__(self, cfg: AppConfig, capture=None, extractor=None, classifier=None, window=None):
        self.cfg = cfg

        device = parse_device_orientation(cfg.device_orientation)
        camera = parse_camera_position(cfg.camera_position)
        self.orientation = OrientationSource(device, camera)

        self.capture = capture or CameraCapture(
            cfg.video_source, cfg.capture_width, cfg.capture_height, position=camera
        )
        self.extractor = extractor or FaceExtractor(
            build_backend(cfg.face_backend, cfg.model_path, cfg.conf_threshold),
            padding=cfg.face_padding,
        )
        self.classifier = classifier or EmotionClassifier(cfg.crop_and_scale)
        self.window = window or PreviewWindow(
            cfg.window_name, cfg.display_width, cfg.display_height, mirror=cfg.mirror_preview
        )

        self.visualizer = EmotionVisualizer()
        self.dispatcher = UiDispatcher()
        self.pipeline = EmotionPipeline(
            self.extractor, self.classifier, self.visualizer, self.dispatcher, self.orientation
        )

    def init(self) -> None:
        """Capture first, then the models. Any failure here is fatal."""
        self.capture.open()
        self.extractor.load()
        self.classifier.load()

    def status_text(self, fps: int) -> str:
        return (f"FPS: {fps}  orientation: {self.orientation.device.value}"
                f"  camera: {self.orientation.camera.value}")

    def handle_key(self, key: int) -> bool:
        """Returns False when the app should quit."""
        if key in (ord("q"), ord("Q")):
            return False
        if key in (ord("o"), ord("O")):
            device = self.orientation.cycle_device()
            logger.info("Device orientation: %s -> %s", device.value, self.orientation.current().name)
        elif key in (ord("c"), ord("C")):
            camera = self.orientation.toggle_camera()
            self.capture.position = camera
            logger.info("Camera: %s -> %s", camera.value, self.orientation.current().name)
        return True

    def run(self) -> None:
        self.dispatcher.bind_to_current_thread()
        self.window.open()
        self.pipeline.start()
        self.capture.start(self.pipeline.on_frame)

        prev_time = time.time()
        t_last_report = time.time()

        try:
            # ==============================
            # MAIN LOOP
            # ==============================
            while True:
                self.dispatcher.process_pending()

                latest = self.capture.latest()

                # ---------- FPS ----------
                now = time.time()
                fps = int(1 / (now - prev_time)) if (now - prev_time) > 0 else 0
                prev_time = now

                # ---------- DISPLAY ----------
                canvas = self.window.compose(
                    latest.pixels if latest is not None else None,
                    self.visualizer,
                    self.status_text(fps),
                )
                key = self.window.show(canvas)

                if DEBUG_TIMING and (now - t_last_report) >= 1.0:
                    t_last_report = now
                    stats = self.pipeline.stats
                    logger.info("[TIMING] fps=%d frames=%d updates=%d skipped=%s",
                                fps, stats.frames, stats.updates, dict(stats.skipped))

                if not self.handle_key(key):
                    break
                if not self.window.visible():
                    break
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        # ==============================
        # CLEAN EXIT
        # ==============================
        self.dispatcher.close()
        self.capture.stop()
        self.pipeline.stop()
        self.window.close()
        logger.info("Done. frames=%d updates=%d skipped=%s",
                    self.pipeline.stats.frames, self.pipeline.stats.updates,
                    dict(self.pipeline.stats.skipped))


def main(argv=None) -> int:
    cfg = config_from_args(argv)
    setup_logging(cfg.log_level)

    try:
        app = App(cfg)
    except ValueError as e:
        logger.error("%s", e)
        raise SystemExit(2)

    try:
        app.init()
    except FacialEmotionError as e:
        logger.error("Startup failed: %s", e)
        app.capture.stop()
        raise SystemExit(1)

    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
