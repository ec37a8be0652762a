"""
QRANCHOR - Marker anchoring toolkit.

This package provides functionality for:
- Corner ordering and plane-to-image homography estimation
- Closed-form marker pose decomposition
- Identifier-keyed anchors with cooldown and smoothing
- Approximate fallback placement
- OpenCV capture, rendering surface and demo UI
"""

from .anchors import Anchor, AnchorConfig, AnchorRegistry, NodeGeometry
from .errors import DegeneratePose, InsufficientCorners, PlacementError, SingularSystem
from .fallback import FallbackConfig, color_from_identifier, string_hash
from .geometry import BoundingRegion, Detection, DetectionKind, Point2D, order_corners
from .homography import compute_homography, solve_linear_system
from .pose import CameraIntrinsics, MarkerPose, Viewport, decompose_homography, estimate_marker_pose
from .scene import MarkerScene, PlacementStrategy, SceneConfig

__version__ = "0.1.0"

__all__ = [
    # Geometry
    "BoundingRegion",
    "Detection",
    "DetectionKind",
    "Point2D",
    "order_corners",
    # Homography & pose
    "CameraIntrinsics",
    "MarkerPose",
    "Viewport",
    "compute_homography",
    "decompose_homography",
    "estimate_marker_pose",
    "solve_linear_system",
    # Anchors
    "Anchor",
    "AnchorConfig",
    "AnchorRegistry",
    "NodeGeometry",
    # Fallback
    "FallbackConfig",
    "color_from_identifier",
    "string_hash",
    # Scene
    "MarkerScene",
    "PlacementStrategy",
    "SceneConfig",
    # Errors
    "DegeneratePose",
    "InsufficientCorners",
    "PlacementError",
    "SingularSystem",
]
