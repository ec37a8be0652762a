"""
Tests for QR capture and detection conversion.
"""

import os
import sys
import unittest

import cv2
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from qranchor.capture import QRCaptureSource, camera_backends, detections_from_qr  # type: ignore
from qranchor.geometry import DetectionKind  # type: ignore


def _qr_frame(text, module_px=8, border=60):
    """Render a QR code into a BGR frame."""
    code = cv2.QRCodeEncoder.create().encode(text)
    code = cv2.resize(code, None, fx=module_px, fy=module_px, interpolation=cv2.INTER_NEAREST)
    code = cv2.copyMakeBorder(code, border, border, border, border, cv2.BORDER_CONSTANT, value=255)
    return cv2.cvtColor(code, cv2.COLOR_GRAY2BGR)


class TestDetectionsFromQR(unittest.TestCase):
    """Test cases for converting detector output."""

    def test_converts_each_decoded_code(self):
        points = np.array([
            [[10, 10], [50, 10], [50, 50], [10, 50]],
            [[100, 100], [140, 100], [140, 140], [100, 140]],
        ], dtype=np.float32)
        detections = detections_from_qr(True, ("QR-A", " QR-B "), points)

        self.assertEqual([d.identifier for d in detections], ["QR-A", "QR-B"])
        self.assertEqual(detections[0].kind, DetectionKind.CORNERS)
        self.assertEqual(detections[1].corners[2].as_tuple(), (140.0, 140.0))

    def test_skips_undecoded_codes(self):
        points = np.zeros((2, 4, 2), dtype=np.float32)
        self.assertEqual(len(detections_from_qr(True, ("", "QR-A"), points)), 1)

    def test_nothing_found(self):
        self.assertEqual(detections_from_qr(False, None, None), [])
        self.assertEqual(detections_from_qr(True, (), None), [])


class TestCameraBackends(unittest.TestCase):
    """Test cases for backend selection."""

    def test_preferred_order_kept_with_fallback_appended(self):
        self.assertEqual(camera_backends(["CAP_FFMPEG"]), ["CAP_FFMPEG", "CAP_ANY"])
        self.assertEqual(camera_backends(["CAP_ANY", "CAP_FFMPEG"]), ["CAP_ANY", "CAP_FFMPEG"])

    def test_unknown_names_dropped(self):
        self.assertEqual(camera_backends(["CAP_NOT_A_BACKEND"]), ["CAP_ANY"])


class TestQRCaptureSource(unittest.TestCase):
    """Test cases for QRCaptureSource."""

    def setUp(self):
        self.source = QRCaptureSource({'camera_init_attempts': 1})

    def tearDown(self):
        self.source.cleanup()

    def test_defaults_from_config(self):
        self.assertEqual((self.source.width, self.source.height), (640, 480))
        self.assertEqual(self.source.backends[-1], "CAP_ANY")

    def test_capture_without_source(self):
        self.assertIsNone(self.source.capture_frame())
        self.assertEqual(self.source.get_frame_info(), {})

    def test_missing_video_file(self):
        self.assertFalse(self.source.load_video_file("/nonexistent/clip.mp4"))
        self.assertIsNone(self.source.cap)

    @unittest.skipUnless(hasattr(cv2, "QRCodeEncoder"), "QR encoder not available")
    def test_detects_rendered_code(self):
        frame = _qr_frame("QR-A")
        detections = self.source.detect(frame)

        self.assertEqual(len(detections), 1)
        self.assertEqual(detections[0].identifier, "QR-A")
        self.assertEqual(len(detections[0].corners), 4)

    def test_blank_frame_has_no_detections(self):
        frame = np.full((240, 320, 3), 255, dtype=np.uint8)
        self.assertEqual(self.source.detect(frame), [])


if __name__ == '__main__':
    unittest.main()
