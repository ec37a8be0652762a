"""
User interface module.

OpenCV window with keyboard controls for the live marker demo.
"""

import logging

import cv2


class UserInterface:
    """Handles display and keyboard input using OpenCV."""

    def __init__(self, config=None):
        """Initialize user interface.

        Args:
            config: Configuration dictionary
        """
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

        self.window_name = "QRANCHOR"
        self.display_width = self.config.get('display_width', 640)
        self.display_height = self.config.get('display_height', 480)

        self.show_detections = self.config.get('show_detections', True)
        self.paused = False
        self.clear_requested = False

    def initialize(self):
        """Create the display window.

        Returns:
            bool: True if initialization successful, False otherwise
        """
        try:
            cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.window_name, self.display_width, self.display_height)
        except cv2.error as e:
            self.logger.error("UI initialization failed: %s", e)
            return False
        self.logger.info("UI initialized: %sx%s", self.display_width, self.display_height)
        return True

    def display_frame(self, frame, anchor_count=0):
        """Show a frame with the status line."""
        if frame is None:
            return
        self._add_status_text(frame, anchor_count)
        cv2.imshow(self.window_name, frame)

    def handle_events(self):
        """Handle user input events.

        Returns:
            bool: True to continue running, False to exit
        """
        key = cv2.waitKey(1) & 0xFF

        if key == ord('q') or key == 27:  # 'q' or ESC
            self.logger.info("User requested exit")
            return False
        elif key == ord('c'):
            self.clear_requested = True
        elif key == ord('d'):
            self.show_detections = not self.show_detections
            self.logger.info("Detection outlines: %s", self.show_detections)
        elif key == ord('p'):
            self.paused = not self.paused
            self.logger.info("Paused: %s", self.paused)
        elif key == ord('h'):
            self._print_help()

        return True

    def consume_clear_request(self):
        """Return and reset the pending clear request."""
        requested, self.clear_requested = self.clear_requested, False
        return requested

    def _add_status_text(self, frame, anchor_count):
        font = cv2.FONT_HERSHEY_SIMPLEX
        color = (0, 255, 0)

        y_offset = 20
        if self.paused:
            cv2.putText(frame, "PAUSED", (10, y_offset), font, 0.5, (0, 0, 255), 1)
            y_offset += 20

        cv2.putText(frame, f"Anchors: {anchor_count}  |  'c' clear, 'h' help, 'q' quit",
                    (10, y_offset), font, 0.5, color, 1)

    def _print_help(self):
        help_text = """
        QRANCHOR Controls:
        ==================
        q / ESC - Quit application
        c       - Clear all anchors
        d       - Toggle detection outlines
        p       - Pause/Resume
        h       - Show this help
        """
        print(help_text)

    def cleanup(self):
        """Close all OpenCV windows."""
        cv2.destroyAllWindows()
        self.logger.info("UI cleaned up")
