"""
Plane-to-image homography estimation.

Direct Linear Transform over four point correspondences with the bottom-right
element fixed to 1, solved by Gauss-Jordan elimination with partial pivoting.
"""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from .errors import SingularSystem

LOGGER = logging.getLogger(__name__)

PIVOT_EPSILON = 1e-8
ELIMINATION_EPSILON = 1e-10
LEADING_EPSILON = 1e-6


def marker_object_points(size: float) -> np.ndarray:
    """Corners of a square marker of side ``size`` on the z=0 plane.

    The origin sits at the first corner; order matches ``order_corners``.
    """
    return np.array(
        [
            [0.0, 0.0],
            [size, 0.0],
            [size, size],
            [0.0, size],
        ],
        dtype=np.float64,
    )


def solve_linear_system(
    A: np.ndarray,
    b: np.ndarray,
    pivot_epsilon: float = PIVOT_EPSILON,
) -> np.ndarray:
    """Solve ``A x = b`` by Gauss-Jordan elimination with partial pivoting.

    Columns whose best pivot is below ``pivot_epsilon`` are skipped without
    consuming a row, so partially reducible systems still yield a
    best-effort solution (unresolved unknowns stay 0).

    Args:
        A: (m, n) coefficient matrix
        b: (m,) right-hand side
        pivot_epsilon: Smallest pivot magnitude treated as usable

    Returns:
        (n,) solution vector
    """
    M = np.hstack([np.asarray(A, dtype=np.float64), np.asarray(b, dtype=np.float64).reshape(-1, 1)])
    rows, cols = M.shape
    unknowns = cols - 1

    r = 0
    for c in range(unknowns):
        if r >= rows:
            break

        pivot = r + int(np.argmax(np.abs(M[r:, c])))
        if abs(M[pivot, c]) < pivot_epsilon:
            LOGGER.debug("Skipping near-singular column %d (pivot %.3e)", c, M[pivot, c])
            continue

        if pivot != r:
            M[[r, pivot]] = M[[pivot, r]]

        M[r, c:] /= M[r, c]

        for i in range(rows):
            if i == r:
                continue
            factor = M[i, c]
            if abs(factor) < ELIMINATION_EPSILON:
                continue
            M[i, c:] -= factor * M[r, c:]
        r += 1

    x = np.zeros(unknowns, dtype=np.float64)
    for i in range(rows):
        significant = np.flatnonzero(np.abs(M[i, :unknowns]) > LEADING_EPSILON)
        if significant.size:
            x[significant[0]] = M[i, unknowns]
    return x


def compute_homography(
    object_points: np.ndarray,
    image_points: np.ndarray,
    pivot_epsilon: float = PIVOT_EPSILON,
) -> np.ndarray:
    """Estimate the homography mapping marker-plane points to image pixels.

    Args:
        object_points: (4, 2) plane coordinates in meters
        image_points: (4, 2) pixel coordinates in matching order
        pivot_epsilon: Forwarded to the linear solver

    Returns:
        3x3 homography with ``H[2, 2] == 1``

    Raises:
        SingularSystem: if fewer than four correspondences are supplied or
            the solve produced non-finite values
    """
    obj = np.asarray(object_points, dtype=np.float64).reshape(-1, 2)
    img = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
    if len(obj) < 4 or len(img) < 4:
        raise SingularSystem(
            f"Homography needs 4 correspondences, got {min(len(obj), len(img))}"
        )

    A = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i in range(4):
        X, Y = obj[i]
        u, v = img[i]
        A[2 * i] = [X, Y, 1.0, 0.0, 0.0, 0.0, -u * X, -u * Y]
        b[2 * i] = u
        A[2 * i + 1] = [0.0, 0.0, 0.0, X, Y, 1.0, -v * X, -v * Y]
        b[2 * i + 1] = v

    h = solve_linear_system(A, b, pivot_epsilon=pivot_epsilon)
    if not np.all(np.isfinite(h)):
        raise SingularSystem("Homography solve produced non-finite values")

    return np.append(h, 1.0).reshape(3, 3)


def project_points(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Map (N, 2) plane points through a homography into (N, 2) pixels."""
    src = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    return cv2.perspectiveTransform(src, np.asarray(H, dtype=np.float64)).reshape(-1, 2)


def reprojection_error(
    H: np.ndarray,
    object_points: np.ndarray,
    image_points: np.ndarray,
) -> Optional[float]:
    """Mean pixel distance between projected object points and observations."""
    try:
        projected = project_points(H, object_points)
    except cv2.error as exc:
        LOGGER.debug("Reprojection failed: %s", exc)
        return None
    observed = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
    return float(np.linalg.norm(projected - observed, axis=1).mean())
