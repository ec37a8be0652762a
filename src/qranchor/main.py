"""
Main entry point for the QRANCHOR application.

Runs the live marker-anchoring demo on a camera or video file, or replays a
recorded detection log without any display.

Usage:
    qranchor                           # Live camera
    qranchor --video clip.mp4          # Video file
    qranchor --replay detections.json  # Headless replay
    qranchor --verbose                 # Enable debug logging
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict, List

import cv2
import numpy as np

from .capture import QRCaptureSource
from .geometry import has_points
from .overlay import OpenCVSceneSurface
from .scene import MarkerScene
from .ui import UserInterface
from .utils import get_config, setup_logging, validate_config

LOGGER = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="QRANCHOR - Anchor virtual objects to QR markers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Replay log format (JSON list, one entry per detection):
  [{"t": 0.0, "data": "QR-A", "corners": [{"x": 300, "y": 220}, ...]},
   {"t": 40.0, "data": "QR-B", "bounds": {"origin": {"x": 10, "y": 10},
                                          "size": {"width": 50, "height": 50}}}]
  "t" is the detection time in milliseconds. An entry {"t": ..., "clear": true}
  clears all anchors; {"t": ..., "viewport": [w, h]} resizes the viewport.
        """,
    )
    parser.add_argument("--config", "-c", help="Path to a JSON configuration file")
    parser.add_argument("--camera", type=int, help="Camera index (overrides config)")
    parser.add_argument("--video", help="Read frames from a video file instead of a camera")
    parser.add_argument("--replay", help="Replay a JSON detection log headlessly")
    parser.add_argument(
        "--verbose", "-V",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    return parser.parse_args(argv)


class RecordingSurface:
    """Headless surface that keeps the last transform of every node."""

    class Node:
        def __init__(self, name, color):
            self.name = name
            self.color = color
            self.position = np.zeros(3)
            self.quaternion = np.array([0.0, 0.0, 0.0, 1.0])
            self.disposed = False

        def set_transform(self, position, quaternion):
            self.position = position
            self.quaternion = quaternion

        def dispose(self):
            self.disposed = True

    def __init__(self):
        self.nodes: Dict[str, "RecordingSurface.Node"] = {}

    def create_node(self, name, geometry, color):
        node = self.Node(name, color)
        self.nodes[name] = node
        return node

    def remove_node(self, node):
        self.nodes.pop(node.name, None)


def replay(events: List[Dict], config: Dict) -> Dict[str, Dict]:
    """Feed a detection log through a headless scene.

    Returns:
        Mapping of identifier -> final position/orientation
    """
    width, height = config['video_width'], config['video_height']
    surface = RecordingSurface()
    scene = MarkerScene(surface, width, height, config=config, clock=lambda: 0.0)

    counts: Dict[str, int] = {}
    for event in events:
        t = float(event.get("t", 0.0))
        if event.get("clear"):
            scene.clear_all()
            continue
        if "viewport" in event:
            scene.update_viewport(*event["viewport"])
            continue
        strategy = scene.handle_payload(event, timestamp=t)
        name = strategy.value if strategy else "dropped"
        counts[name] = counts.get(name, 0) + 1

    LOGGER.info("Replayed %d events: %s", len(events), counts)
    return {
        name: {
            "position": [round(float(v), 4) for v in node.position],
            "quaternion": [round(float(v), 4) for v in node.quaternion],
        }
        for name, node in surface.nodes.items()
    }


def _draw_detections(frame, detections):
    for detection in detections:
        if not has_points(detection.corners):
            continue
        pts = np.array([p.as_tuple() for p in detection.corners], dtype=np.int32)
        cv2.polylines(frame, [pts], True, (0, 255, 0), 1)


def run_live(config: Dict, video_path=None) -> bool:
    """Run the capture/render loop until the user quits."""
    source = QRCaptureSource(config)
    opened = source.load_video_file(video_path) if video_path else source.initialize()
    if not opened:
        return False

    surface = OpenCVSceneSurface(config.get('overlay'))
    scene = MarkerScene(surface, config['video_width'], config['video_height'], config=config)
    ui = UserInterface(config)
    if not ui.initialize():
        source.cleanup()
        return False

    try:
        while True:
            if not ui.paused:
                frame = source.capture_frame()
                if frame is None:
                    break
                scene.update_viewport(frame.shape[1], frame.shape[0])

                detections = source.detect(frame)
                for detection in detections:
                    scene.handle_detection(detection)

                surface.tick()
                frame = surface.render(frame, scene.intrinsics)
                if ui.show_detections:
                    _draw_detections(frame, detections)
                ui.display_frame(frame, anchor_count=len(scene.registry))

            if not ui.handle_events():
                break
            if ui.consume_clear_request():
                scene.clear_all()
    finally:
        scene.dispose()
        surface.cleanup()
        source.cleanup()
        ui.cleanup()
    return True


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level)

    config = get_config(args.config)
    if args.camera is not None:
        config['camera_id'] = args.camera
    if not validate_config(config):
        sys.exit(2)

    LOGGER.info("Starting QRANCHOR...")

    if args.replay:
        try:
            with open(args.replay, 'r') as f:
                events = json.load(f)
        except (OSError, ValueError) as e:
            LOGGER.error("Failed to read replay log %s: %s", args.replay, e)
            sys.exit(1)
        print(json.dumps(replay(events, config), indent=2))
        sys.exit(0)

    if not run_live(config, video_path=args.video):
        LOGGER.error("Could not open a frame source")
        sys.exit(1)

    LOGGER.info("QRANCHOR exited normally")
    sys.exit(0)


if __name__ == "__main__":
    main()
