"""
Detection payloads and corner ordering.

Converts the loosely-shaped detection events produced by a capture source
into typed values, and normalizes raw corner sets into a consistent
four-corner winding suitable for homography estimation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

from .errors import InsufficientCorners

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Point2D:
    """Pixel coordinates in the capture's native frame."""

    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class BoundingRegion:
    """Axis-aligned detection rectangle (origin is the top-left corner)."""

    origin: Point2D
    width: float
    height: float

    @property
    def center(self) -> Point2D:
        return Point2D(self.origin.x + self.width / 2, self.origin.y + self.height / 2)

    @property
    def mean_size(self) -> float:
        return (self.width + self.height) / 2


class DetectionKind(Enum):
    """Which placement data a detection carries."""

    CORNERS = "corners"
    REGION = "region"
    NONE = "none"


@dataclass(frozen=True)
class Detection:
    """A single recognized marker in one capture frame.

    Detections are ephemeral; nothing downstream keeps a reference to them.
    """

    identifier: str
    corners: Optional[Tuple[Point2D, ...]] = None
    bounding_region: Optional[BoundingRegion] = None

    @property
    def kind(self) -> DetectionKind:
        if has_points(self.corners):
            return DetectionKind.CORNERS
        if self.bounding_region is not None:
            return DetectionKind.REGION
        return DetectionKind.NONE

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Detection":
        """Build a detection from a raw capture payload.

        Accepts the key spellings used by common barcode scanners:
        ``data``/``identifier`` for the payload string, ``corners``/
        ``cornerPoints`` for the corner list (either at the top level or
        inside ``bounds``), and ``bounds``/``boundingRegion`` holding
        ``origin`` and ``size``.
        """
        identifier = payload.get("identifier", payload.get("data", ""))
        bounds = payload.get("boundingRegion")
        if bounds is None:
            bounds = payload.get("bounds", {})

        raw_corners = _first_points(payload, "corners", "cornerPoints")
        if raw_corners is None and isinstance(bounds, Mapping):
            raw_corners = _first_points(bounds, "corners", "cornerPoints")

        return cls(
            identifier=str(identifier) if identifier is not None else "",
            corners=parse_points(raw_corners) if has_points(raw_corners) else None,
            bounding_region=parse_bounding_region(bounds),
        )


def has_points(raw: Any) -> bool:
    """True for a non-empty point collection (lists, tuples or numpy arrays)."""
    return raw is not None and len(raw) > 0


def _first_points(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if has_points(value):
            return value
    return None


def parse_point(raw: Any) -> Point2D:
    """Coerce a mapping, sequence, or Point2D into a Point2D."""
    if isinstance(raw, Point2D):
        return raw
    if isinstance(raw, Mapping):
        x = raw.get("x", raw.get("X", 0.0))
        y = raw.get("y", raw.get("Y", 0.0))
        return Point2D(float(x or 0.0), float(y or 0.0))
    return Point2D(float(raw[0]), float(raw[1]))


def parse_points(raw: Iterable[Any]) -> Tuple[Point2D, ...]:
    return tuple(parse_point(p) for p in raw)


def parse_bounding_region(raw: Any) -> Optional[BoundingRegion]:
    """Parse ``{"origin": {x, y}, "size": {width, height}}``; None if incomplete."""
    if isinstance(raw, BoundingRegion):
        return raw
    if not isinstance(raw, Mapping):
        return None
    origin = raw.get("origin")
    size = raw.get("size")
    if not origin or not size:
        return None
    return BoundingRegion(
        origin=parse_point(origin),
        width=float(size.get("width", 0.0)),
        height=float(size.get("height", 0.0)),
    )


def map_point_to_viewport(point: Point2D) -> Point2D:
    """Map a capture-frame point into viewport pixels.

    Identity for now: the capture and viewport frames coincide.
    """
    return point


def signed_area(corners: np.ndarray) -> float:
    """Cross product of edges 0->1 and 0->3 of an ordered quad."""
    e1 = corners[1] - corners[0]
    e3 = corners[3] - corners[0]
    return float(e1[0] * e3[1] - e1[1] * e3[0])


def order_corners(points: Sequence[Any]) -> np.ndarray:
    """Return exactly four corners in a canonical winding.

    Points are sorted by angle around their centroid, rotated so the point
    with the smallest ``x + y`` (top-left in a y-down image) comes first,
    and reversed behind that start corner if the winding is negative.

    Args:
        points: Four or more points (Point2D, mappings, or pairs)

    Returns:
        4x2 float64 array of ordered corners

    Raises:
        InsufficientCorners: if fewer than four points are given
    """
    if points is None or len(points) < 4:
        raise InsufficientCorners(0 if points is None else len(points))

    pts = np.array([parse_point(p).as_tuple() for p in points], dtype=np.float64)
    centroid = pts.mean(axis=0)

    angles = np.arctan2(pts[:, 1] - centroid[1], pts[:, 0] - centroid[0])
    pts = pts[np.argsort(angles, kind="stable")]

    start = int(np.argmin(pts[:, 0] + pts[:, 1]))
    ordered = np.roll(pts, -start, axis=0)

    if signed_area(ordered) < 0:
        ordered = np.vstack([ordered[:1], ordered[1:][::-1]])

    return ordered[:4].copy()
