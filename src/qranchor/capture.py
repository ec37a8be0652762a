"""
Camera capture and QR detection glue.

Opens a camera or video file with OpenCV and converts the results of
OpenCV's built-in QR detector into ``Detection`` events.
"""

import logging
import platform
from typing import List, Optional, Sequence

import cv2
import numpy as np

from .geometry import Detection, Point2D


def detections_from_qr(ok: bool, texts: Optional[Sequence[str]], points: Optional[np.ndarray]) -> List[Detection]:
    """Convert ``QRCodeDetector.detectAndDecodeMulti`` output to detections.

    Codes that were located but not decoded (empty text) are skipped.
    """
    if not ok or texts is None or points is None:
        return []

    detections = []
    for text, quad in zip(texts, np.asarray(points, dtype=np.float64).reshape(-1, 4, 2)):
        identifier = (text or "").strip()
        if not identifier:
            continue
        corners = tuple(Point2D(float(x), float(y)) for x, y in quad)
        detections.append(Detection(identifier=identifier, corners=corners))
    return detections


# Native capture API per platform; CAP_ANY is always tried last.
_NATIVE_BACKENDS = {
    'Darwin': 'CAP_AVFOUNDATION',
    'Windows': 'CAP_DSHOW',
}


def camera_backends(preferred: Optional[Sequence[str]] = None) -> List[str]:
    """OpenCV capture backend names to try, in order.

    Names unknown to the installed OpenCV build are dropped.
    """
    names = list(preferred or [_NATIVE_BACKENDS.get(platform.system(), 'CAP_V4L2')])
    if 'CAP_ANY' not in names:
        names.append('CAP_ANY')
    return [name for name in names if hasattr(cv2, name)]


class QRCaptureSource:
    """Handles video capture and per-frame QR detection."""

    def __init__(self, config=None):
        """Initialize capture source.

        Args:
            config: Configuration dictionary
        """
        self.config = config or {}
        self.cap: Optional[cv2.VideoCapture] = None
        self.logger = logging.getLogger(__name__)

        self.camera_id = self.config.get('camera_id', 0)
        self.width = self.config.get('video_width', 640)
        self.height = self.config.get('video_height', 480)
        self.fps = self.config.get('video_fps', 30)

        self.backends = camera_backends(self.config.get('camera_backend_priority'))
        self.selected_backend: Optional[str] = None
        self.max_init_attempts = self.config.get('camera_init_attempts', 10)

        self.detector = cv2.QRCodeDetector()

    def initialize(self):
        """Open the configured camera.

        Returns:
            bool: True if a backend produced frames, False otherwise
        """
        self.cleanup()

        for backend in self.backends:
            self.logger.info("Opening camera %s with %s", self.camera_id, backend)
            cap = cv2.VideoCapture(self.camera_id, getattr(cv2, backend))
            if not cap.isOpened():
                self.logger.warning(
                    "Failed to open camera %s with %s", self.camera_id, backend
                )
                cap.release()
                continue

            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            cap.set(cv2.CAP_PROP_FPS, self.fps)

            if self._warmup_camera(cap) is None:
                self.logger.warning(
                    "Camera opened but produced no frames (%s)", backend
                )
                cap.release()
                continue

            self.cap = cap
            self.selected_backend = backend
            self.logger.info("Camera ready: %s", self.get_frame_info())
            return True

        self.logger.error(
            "Unable to open camera %s with %s", self.camera_id, self.backends
        )
        return False

    def _warmup_camera(self, cap: cv2.VideoCapture) -> Optional[np.ndarray]:
        """Read a few frames until one is not entirely black."""
        for attempt in range(1, self.max_init_attempts + 1):
            ret, frame = cap.read()
            if ret and frame is not None and frame.size > 0:
                if frame.mean() == 0:
                    self.logger.debug("Warmup frame %s is black; retrying", attempt)
                    continue
                return frame
        return None

    def load_video_file(self, filepath):
        """Use a video file instead of a camera.

        Returns:
            bool: True if the file opened
        """
        self.cleanup()
        self.cap = cv2.VideoCapture(filepath)
        if not self.cap.isOpened():
            self.logger.error("Failed to open video file: %s", filepath)
            self.cap = None
            return False
        self.logger.info("Video file loaded: %s", filepath)
        return True

    def capture_frame(self):
        """Read the next frame, or None if the source is exhausted."""
        if self.cap is None or not self.cap.isOpened():
            return None
        ret, frame = self.cap.read()
        if not ret:
            self.logger.warning("Failed to capture frame")
            return None
        return frame

    def detect(self, frame: np.ndarray) -> List[Detection]:
        """Run the QR detector on a frame."""
        try:
            ok, texts, points, _ = self.detector.detectAndDecodeMulti(frame)
        except cv2.error as e:
            self.logger.debug("QR detection failed: %s", e)
            return []
        return detections_from_qr(ok, texts, points)

    def get_frame_info(self):
        if self.cap is None:
            return {}
        return {
            'width': int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            'height': int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            'fps': int(self.cap.get(cv2.CAP_PROP_FPS)),
            'backend': self.selected_backend,
        }

    def cleanup(self):
        """Release the capture device."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            self.logger.info("Capture source released")
