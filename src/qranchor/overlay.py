"""
OpenCV rendering surface.

A minimal scene graph that implements the node-management interface used by
the anchor registry and draws each node as a wireframe box projected onto a
camera frame.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .anchors import NodeGeometry
from .pose import CV_TO_RENDER, CameraIntrinsics

LOGGER = logging.getLogger(__name__)

BOX_EDGES = [
    (0, 1), (1, 2), (2, 3), (3, 0),  # Back face
    (4, 5), (5, 6), (6, 7), (7, 4),  # Front face
    (0, 4), (1, 5), (2, 6), (3, 7),  # Connecting edges
]


@dataclass
class OverlayConfiguration:
    """Configuration for the OpenCV surface."""

    thickness: int = 2
    antialiasing: bool = True
    show_labels: bool = True
    animate: bool = True
    spin_x: float = 0.005  # Radians per tick
    spin_y: float = 0.01
    near_clip: float = 0.01


def _to_bgr(color: Tuple[float, float, float]) -> Tuple[int, int, int]:
    r, g, b = (int(round(c * 255)) for c in color)
    return (b, g, r)


class CubeNode:
    """Box-shaped scene node owned by an ``OpenCVSceneSurface``."""

    def __init__(self, name: str, geometry: NodeGeometry, color: Tuple[float, float, float]):
        self.name = name
        self.geometry = geometry
        self.color = _to_bgr(color)
        self.position = np.zeros(3)
        self.quaternion = np.array([0.0, 0.0, 0.0, 1.0])
        self.spin = np.zeros(2)  # Local (x, y) rotation added by the animation tick
        self.transform_updates = 0

        w, h, d = geometry.width / 2, geometry.height / 2, geometry.depth / 2
        self.vertices: Optional[np.ndarray] = np.array([
            [-w, -h, -d], [w, -h, -d], [w, h, -d], [-w, h, -d],
            [-w, -h, d], [w, -h, d], [w, h, d], [-w, h, d],
        ], dtype=np.float64)

    @property
    def disposed(self) -> bool:
        return self.vertices is None

    def set_transform(self, position: np.ndarray, quaternion: np.ndarray):
        if self.disposed:
            LOGGER.warning("Ignoring transform for disposed node %r", self.name)
            return
        self.position = np.asarray(position, dtype=np.float64).copy()
        self.quaternion = np.asarray(quaternion, dtype=np.float64).copy()
        self.transform_updates += 1

    def dispose(self):
        """Release geometry buffers."""
        self.vertices = None

    def world_vertices(self) -> Optional[np.ndarray]:
        """Vertices in render-space camera coordinates."""
        if self.disposed:
            return None
        local = Rotation.from_euler("xy", self.spin).apply(self.vertices)
        return Rotation.from_quat(self.quaternion).apply(local) + self.position


class OpenCVSceneSurface:
    """
    Scene graph drawn with OpenCV primitives.

    Nodes live in render-space camera coordinates (y up, -z forward); they
    are flipped back into the vision convention for projection.
    """

    def __init__(self, config: Optional[Dict] = None):
        cfg = config or {}
        self.config = OverlayConfiguration(
            thickness=cfg.get("thickness", 2),
            antialiasing=cfg.get("antialiasing", True),
            show_labels=cfg.get("show_labels", True),
            animate=cfg.get("animate", True),
            spin_x=cfg.get("spin_x", 0.005),
            spin_y=cfg.get("spin_y", 0.01),
            near_clip=cfg.get("near_clip", 0.01),
        )
        self.nodes: List[CubeNode] = []

    # ------------------------------------------------------------------ #
    # Node management
    # ------------------------------------------------------------------ #
    def create_node(
        self,
        name: str,
        geometry: NodeGeometry,
        color: Tuple[float, float, float],
    ) -> CubeNode:
        node = CubeNode(name, geometry, color)
        self.nodes.append(node)
        LOGGER.debug("Node %r added (color %s)", name, node.color)
        return node

    def remove_node(self, node: CubeNode):
        if node in self.nodes:
            self.nodes.remove(node)

    def tick(self):
        """Advance the idle spin animation by one frame."""
        if not self.config.animate:
            return
        for node in self.nodes:
            node.spin += (self.config.spin_x, self.config.spin_y)

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #
    def render(self, frame: np.ndarray, intrinsics: CameraIntrinsics) -> np.ndarray:
        """Draw every node onto ``frame`` and return it."""
        K = intrinsics.matrix
        for node in self.nodes:
            try:
                frame = self._render_node(frame, node, K)
            except cv2.error as e:
                LOGGER.warning("Failed to render node %r: %s", node.name, e)
        return frame

    def _project(self, points_render: np.ndarray, K: np.ndarray) -> Optional[np.ndarray]:
        points_cv = points_render * np.diag(CV_TO_RENDER)[:3]
        if np.any(points_cv[:, 2] <= self.config.near_clip):
            return None
        image_points, _ = cv2.projectPoints(
            points_cv,
            np.zeros(3),
            np.zeros(3),
            K,
            np.zeros(5),
        )
        return image_points.reshape(-1, 2).astype(np.int32)

    def _render_node(self, frame: np.ndarray, node: CubeNode, K: np.ndarray) -> np.ndarray:
        vertices = node.world_vertices()
        if vertices is None:
            return frame

        pts_2d = self._project(vertices, K)
        if pts_2d is None:
            return frame

        line_type = cv2.LINE_AA if self.config.antialiasing else cv2.LINE_8
        layer = frame.copy()
        for i, j in BOX_EDGES:
            cv2.line(layer, tuple(int(v) for v in pts_2d[i]), tuple(int(v) for v in pts_2d[j]),
                     node.color, self.config.thickness, line_type)

        if self.config.show_labels:
            anchor = pts_2d.min(axis=0)
            cv2.putText(layer, node.name, (int(anchor[0]), int(anchor[1]) - 6),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, node.color, 1, line_type)

        return cv2.addWeighted(layer, node.geometry.opacity, frame, 1 - node.geometry.opacity, 0)

    def cleanup(self):
        """Dispose every remaining node."""
        for node in list(self.nodes):
            node.dispose()
        self.nodes.clear()
        LOGGER.info("OpenCV surface cleaned up")
