"""
Marker scene facade.

Routes each detection through the best placement strategy it supports
(full pose from corners, bounding-region unprojection, identifier hash) and
hands the result to the anchor registry. Nothing raised by the placement
pipeline escapes this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from .anchors import AnchorConfig, AnchorRegistry, NodeGeometry, SceneSurface
from .errors import PlacementError
from .fallback import FallbackConfig, position_from_hash, position_from_region
from .geometry import Detection, DetectionKind, has_points, parse_bounding_region, parse_points
from .homography import PIVOT_EPSILON
from .pose import CameraIntrinsics, MarkerPose, Viewport, estimate_marker_pose

LOGGER = logging.getLogger(__name__)


class PlacementStrategy(Enum):
    """How an accepted detection was placed."""

    POSE = "pose"
    REGION = "region"
    HASH = "hash"


@dataclass
class SceneConfig:
    """Camera and marker parameters for the scene."""

    fov_deg: float = 60.0
    near: float = 0.01
    far: float = 100.0
    marker_size_m: float = 0.12
    pivot_epsilon: float = PIVOT_EPSILON


def build_configs(config: Optional[Mapping[str, Any]] = None):
    """Split a nested configuration dict into the scene's config dataclasses."""
    cfg = config or {}
    scene_cfg = cfg.get("scene", {})
    anchor_cfg = cfg.get("anchors", {})
    fallback_cfg = cfg.get("fallback", {})
    solver_cfg = cfg.get("solver", {})

    scene = SceneConfig(
        fov_deg=scene_cfg.get("fov_deg", 60.0),
        near=scene_cfg.get("near", 0.01),
        far=scene_cfg.get("far", 100.0),
        marker_size_m=scene_cfg.get("marker_size_m", 0.12),
        pivot_epsilon=solver_cfg.get("pivot_epsilon", PIVOT_EPSILON),
    )

    cube = anchor_cfg.get("cube_size_m", 0.15)
    anchors = AnchorConfig(
        cooldown_ms=anchor_cfg.get("cooldown_ms", 16.0),
        position_smoothing=anchor_cfg.get("position_smoothing", 0.5),
        rotation_smoothing=anchor_cfg.get("rotation_smoothing", 0.5),
        saturation=anchor_cfg.get("saturation", 0.7),
        lightness=anchor_cfg.get("lightness", 0.6),
        geometry=NodeGeometry(cube, cube, cube, anchor_cfg.get("opacity", 0.9)),
    )

    fallback = FallbackConfig(
        min_distance=fallback_cfg.get("min_distance", 0.4),
        max_distance=fallback_cfg.get("max_distance", 3.0),
        size_scale=fallback_cfg.get("size_scale", 0.9),
        min_size_ratio=fallback_cfg.get("min_size_ratio", 0.001),
        hash_spread=fallback_cfg.get("hash_spread", 1.2),
        hash_depth=fallback_cfg.get("hash_depth", 1.2),
    )
    return scene, anchors, fallback


class MarkerScene:
    """
    Places and maintains one virtual object per recognized marker.

    Driven from a single frame loop: call ``place_object_at_identifier`` for
    each detection, ``update_viewport`` on resize, ``clear_all`` to reset.
    """

    def __init__(
        self,
        surface: SceneSurface,
        width: float,
        height: float,
        config: Optional[Dict] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if not width or not height or width <= 0 or height <= 0:
            raise ValueError(f"Viewport dimensions must be positive, got {width}x{height}")

        self.config, anchor_config, self.fallback_config = build_configs(config)
        self.viewport = Viewport(
            width=float(width),
            height=float(height),
            fov_deg=self.config.fov_deg,
            near=self.config.near,
            far=self.config.far,
        )
        self.registry = AnchorRegistry(surface, anchor_config, clock=clock)

    @property
    def intrinsics(self) -> CameraIntrinsics:
        """Intrinsics for the current viewport, never cached."""
        return self.viewport.intrinsics()

    def update_viewport(self, width: Optional[float], height: Optional[float]):
        """Adopt a new viewport size; ignored if either dimension is missing or zero."""
        if not width or not height or width <= 0 or height <= 0:
            LOGGER.debug("Ignoring viewport update %sx%s", width, height)
            return
        self.viewport.width = float(width)
        self.viewport.height = float(height)

    def place_object_at_identifier(
        self,
        identifier: Optional[str],
        corners: Optional[Sequence[Any]] = None,
        bounding_region: Optional[Any] = None,
        timestamp: Optional[float] = None,
    ) -> Optional[PlacementStrategy]:
        """Create or update the anchor for a detected marker.

        Args:
            identifier: Marker payload; trimmed, empty values are ignored
            corners: Raw corner points in capture pixels
            bounding_region: ``BoundingRegion`` or ``{"origin", "size"}`` mapping
            timestamp: Detection time in milliseconds (defaults to the clock)

        Returns:
            The strategy used, or None if the call was ignored or throttled
        """
        key = (identifier or "").strip()
        if not key:
            return None

        try:
            parsed_corners = parse_points(corners) if has_points(corners) else None
        except (TypeError, ValueError, IndexError) as exc:
            LOGGER.debug("Malformed corners for %r ignored: %s", key, exc)
            parsed_corners = None
        try:
            region = parse_bounding_region(bounding_region)
        except (TypeError, ValueError, AttributeError) as exc:
            LOGGER.debug("Malformed bounding region for %r ignored: %s", key, exc)
            region = None

        detection = Detection(identifier=key, corners=parsed_corners, bounding_region=region)
        return self.handle_detection(detection, timestamp=timestamp)

    def handle_payload(
        self,
        payload: Mapping[str, Any],
        timestamp: Optional[float] = None,
    ) -> Optional[PlacementStrategy]:
        """Place from a raw capture payload (see ``Detection.from_payload``)."""
        try:
            detection = Detection.from_payload(payload)
        except (TypeError, ValueError, IndexError, AttributeError) as exc:
            LOGGER.debug("Malformed detection payload ignored: %s", exc)
            return None
        return self.place_object_at_identifier(
            detection.identifier,
            corners=detection.corners,
            bounding_region=detection.bounding_region,
            timestamp=timestamp,
        )

    def handle_detection(
        self,
        detection: Detection,
        timestamp: Optional[float] = None,
    ) -> Optional[PlacementStrategy]:
        key = detection.identifier.strip()
        if not key:
            return None

        now = self.registry.now() if timestamp is None else timestamp
        if not self.registry.accepts(key, now):
            return None

        kind = detection.kind
        if kind is DetectionKind.CORNERS:
            pose = self._estimate_pose(key, detection)
            if pose is not None:
                self.registry.upsert(key, pose=pose, timestamp=now)
                return PlacementStrategy.POSE
            kind = DetectionKind.REGION if detection.bounding_region is not None else DetectionKind.NONE

        if kind is DetectionKind.REGION:
            position = position_from_region(detection.bounding_region, self.viewport, self.fallback_config)
            self.registry.upsert(key, position=position, timestamp=now)
            return PlacementStrategy.REGION

        position = position_from_hash(key, self.fallback_config)
        self.registry.upsert(key, position=position, timestamp=now)
        return PlacementStrategy.HASH

    def _estimate_pose(self, key: str, detection: Detection) -> Optional[MarkerPose]:
        try:
            pose = estimate_marker_pose(
                detection.corners,
                self.intrinsics,
                self.config.marker_size_m,
                pivot_epsilon=self.config.pivot_epsilon,
            )
        except PlacementError as exc:
            LOGGER.debug("Pose for %r unavailable (%s: %s); falling back", key, type(exc).__name__, exc)
            return None

        LOGGER.debug(
            "Pose for %r: distance %.3f m, reprojection error %s px",
            key,
            pose.describe()["distance"],
            "n/a" if pose.reprojection_error is None else f"{pose.reprojection_error:.2f}",
        )
        return pose

    def clear_all(self):
        """Remove every anchor and reset all cooldowns."""
        count = len(self.registry)
        self.registry.clear()
        LOGGER.info("Cleared %d anchors", count)

    def dispose(self):
        self.clear_all()
