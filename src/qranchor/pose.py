"""
Marker pose estimation module.

Derives camera intrinsics from the viewport, decomposes a plane-to-image
homography into a rigid transform, and converts that transform from the
vision convention (y-down, z-forward) into the rendering convention
(y-up, camera looking down -z).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .errors import DegeneratePose
from .geometry import map_point_to_viewport, order_corners, parse_point
from .homography import (
    PIVOT_EPSILON,
    compute_homography,
    marker_object_points,
    reprojection_error,
)

LOGGER = logging.getLogger(__name__)

# Negates the y and z axes: vision camera frame -> render camera frame.
CV_TO_RENDER = np.diag([1.0, -1.0, -1.0, 1.0])

DEGENERATE_NORM = 1e-12


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics in viewport pixels."""

    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_viewport(cls, width: float, height: float, fov_deg: float) -> "CameraIntrinsics":
        """Derive intrinsics from viewport size and vertical field of view.

        ``fx`` is ``fy`` scaled by the aspect ratio, and the principal point
        sits at the viewport centre.
        """
        aspect = width / height
        fy = (height / 2) / math.tan(math.radians(fov_deg) / 2)
        return cls(fx=fy * aspect, fy=fy, cx=width / 2, cy=height / 2)

    @property
    def matrix(self) -> np.ndarray:
        return np.array(
            [
                [self.fx, 0.0, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )

    @property
    def inverse(self) -> np.ndarray:
        return np.linalg.inv(self.matrix)


@dataclass
class Viewport:
    """Current rendering viewport and perspective camera parameters.

    The camera sits at the origin looking down -z with y up.
    """

    width: float
    height: float
    fov_deg: float = 60.0
    near: float = 0.01
    far: float = 100.0

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def intrinsics(self) -> CameraIntrinsics:
        """Intrinsics for the viewport as it is right now."""
        return CameraIntrinsics.from_viewport(self.width, self.height, self.fov_deg)

    def projection_matrix(self) -> np.ndarray:
        """OpenGL-style perspective projection matrix."""
        f = 1.0 / math.tan(math.radians(self.fov_deg) / 2)
        n, far = self.near, self.far
        return np.array(
            [
                [f / self.aspect, 0.0, 0.0, 0.0],
                [0.0, f, 0.0, 0.0],
                [0.0, 0.0, -(far + n) / (far - n), -2 * far * n / (far - n)],
                [0.0, 0.0, -1.0, 0.0],
            ],
            dtype=np.float64,
        )

    def unproject(self, ndc_x: float, ndc_y: float, ndc_z: float = 0.5) -> np.ndarray:
        """Map normalized device coordinates back to a camera-space point."""
        point = np.linalg.inv(self.projection_matrix()) @ np.array([ndc_x, ndc_y, ndc_z, 1.0])
        return point[:3] / point[3]

    def to_ndc(self, x: float, y: float) -> np.ndarray:
        """Convert viewport pixels (y-down) to normalized device coordinates."""
        return np.array([(x / self.width) * 2 - 1, -((y / self.height) * 2 - 1)])


@dataclass
class MarkerPose:
    """Camera-space placement of a marker plane.

    ``rotation_matrix`` and ``translation_vector`` are in the vision
    convention; ``render_matrix`` applies the axis flip exactly once.
    """

    rotation_matrix: np.ndarray
    translation_vector: np.ndarray
    homography: Optional[np.ndarray] = None
    reprojection_error: Optional[float] = None

    def as_matrix(self) -> np.ndarray:
        """Return the 4x4 rigid transform in the vision convention."""
        transform = np.eye(4, dtype=np.float64)
        transform[:3, :3] = self.rotation_matrix
        transform[:3, 3] = np.asarray(self.translation_vector).flatten()
        return transform

    def render_matrix(self) -> np.ndarray:
        """Return the 4x4 transform in the rendering convention."""
        return CV_TO_RENDER @ self.as_matrix()

    @property
    def position(self) -> np.ndarray:
        return self.render_matrix()[:3, 3].copy()

    @property
    def quaternion(self) -> np.ndarray:
        """Render-convention orientation as a scalar-last (x, y, z, w) quaternion."""
        return Rotation.from_matrix(self.render_matrix()[:3, :3]).as_quat()

    @property
    def rotation_vector(self) -> np.ndarray:
        """Vision-convention Rodrigues vector, shape (3, 1)."""
        rvec, _ = cv2.Rodrigues(np.asarray(self.rotation_matrix, dtype=np.float64))
        return rvec

    def describe(self) -> Dict:
        """Decompose into euler angles (degrees), position and distance."""
        R = self.rotation_matrix
        sy = np.sqrt(R[0, 0] ** 2 + R[1, 0] ** 2)

        if sy >= 1e-6:
            roll = np.arctan2(R[2, 1], R[2, 2])
            pitch = np.arctan2(-R[2, 0], sy)
            yaw = np.arctan2(R[1, 0], R[0, 0])
        else:
            roll = np.arctan2(-R[1, 2], R[1, 1])
            pitch = np.arctan2(-R[2, 0], sy)
            yaw = 0.0

        t = np.asarray(self.translation_vector).flatten()
        return {
            "euler_angles": (np.degrees(roll), np.degrees(pitch), np.degrees(yaw)),
            "position": (t[0], t[1], t[2]),
            "distance": float(np.linalg.norm(t)),
        }


def _normalize(v: np.ndarray) -> Optional[np.ndarray]:
    norm = np.linalg.norm(v)
    if norm < DEGENERATE_NORM:
        return None
    return v / norm


def decompose_homography(H: np.ndarray, intrinsics: CameraIntrinsics) -> Optional[MarkerPose]:
    """Recover the marker's rigid transform from a homography.

    Closed-form, single pass: the homography columns are back-projected
    through ``K^-1``, scaled so the first rotation axis has unit length, and
    the basis is re-orthogonalised with two cross products.

    Returns:
        MarkerPose, or None if the leading column (or the recovered basis)
        is degenerate
    """
    K_inv = intrinsics.inverse
    h1 = K_inv @ H[:, 0]
    h2 = K_inv @ H[:, 1]
    h3 = K_inv @ H[:, 2]

    norm = np.linalg.norm(h1)
    if norm < DEGENERATE_NORM:
        LOGGER.debug("Degenerate homography: leading column norm %.3e", norm)
        return None

    scale = 1.0 / norm
    r1 = h1 * scale
    r2 = h2 * scale

    r3 = _normalize(np.cross(r1, r2))
    if r3 is None:
        LOGGER.debug("Degenerate homography: rotation basis collapsed")
        return None
    r2 = _normalize(np.cross(r3, r1))

    rotation = np.column_stack([r1, r2, r3])
    translation = h3 * scale

    return MarkerPose(rotation_matrix=rotation, translation_vector=translation, homography=H)


def estimate_marker_pose(
    corners: Sequence,
    intrinsics: CameraIntrinsics,
    marker_size: float,
    pivot_epsilon: float = PIVOT_EPSILON,
) -> MarkerPose:
    """Estimate a marker pose from raw detected corners.

    Args:
        corners: Four or more raw corner points in capture pixels
        intrinsics: Intrinsics for the current viewport
        marker_size: Physical side length of the marker in meters
        pivot_epsilon: Forwarded to the homography solver

    Raises:
        InsufficientCorners: fewer than four corners
        SingularSystem: the homography solve failed
        DegeneratePose: decomposition produced no result
    """
    mapped = [map_point_to_viewport(parse_point(p)) for p in corners]
    image_points = order_corners(mapped)
    object_points = marker_object_points(marker_size)

    H = compute_homography(object_points, image_points, pivot_epsilon=pivot_epsilon)
    pose = decompose_homography(H, intrinsics)
    if pose is None:
        raise DegeneratePose("Homography leading column is near zero")

    pose.reprojection_error = reprojection_error(H, object_points, image_points)
    return pose
