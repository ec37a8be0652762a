"""
Approximate placement when no full pose is available.

Two strategies, tried in order: unproject the centre of the detection's
bounding region at a distance derived from its apparent size, or scatter the
object at a fixed depth using a hash of the identifier.
"""

from __future__ import annotations

import colorsys
import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .geometry import BoundingRegion, map_point_to_viewport
from .pose import Viewport

LOGGER = logging.getLogger(__name__)


@dataclass
class FallbackConfig:
    """Configuration for approximate placement."""

    min_distance: float = 0.4
    max_distance: float = 3.0
    size_scale: float = 0.9  # Apparent size ratio at which distance is 0.9 units
    min_size_ratio: float = 0.001
    hash_spread: float = 1.2  # Width of the hash scatter square
    hash_depth: float = 1.2


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str):
    data = text.encode("utf-16-le", "surrogatepass")
    return [int.from_bytes(data[i:i + 2], "little") for i in range(0, len(data), 2)]


def string_hash(text: str) -> int:
    """Non-negative 32-bit rolling hash (``h * 31 + c`` over UTF-16 units).

    Stable across processes, unlike ``hash()``.
    """
    h = 0
    for code in _utf16_units(text or ""):
        h = _to_int32(_to_int32(h << 5) - h + code)
    return abs(h)


def color_hash(text: str) -> int:
    """Rolling hash used for colours.

    Only the shifted term is truncated to 32 bits; the running sum is not
    wrapped, so long strings hash differently from ``string_hash``.
    """
    h = 0
    for code in _utf16_units(text or ""):
        h = code + (_to_int32(_to_int32(h) << 5) - h)
    return abs(h)


def hue_from_identifier(identifier: str) -> int:
    """Hue in [0, 360) derived from the identifier."""
    return color_hash(identifier) % 360


def color_from_identifier(
    identifier: str,
    saturation: float = 0.7,
    lightness: float = 0.6,
) -> Tuple[float, float, float]:
    """Deterministic RGB colour (floats in [0, 1]) for an identifier."""
    hue = hue_from_identifier(identifier) / 360.0
    return colorsys.hls_to_rgb(hue, lightness, saturation)


def rgb_to_hex(rgb: Tuple[float, float, float]) -> int:
    r, g, b = (int(round(c * 255)) for c in rgb)
    return (r << 16) | (g << 8) | b


def region_distance(region: BoundingRegion, viewport: Viewport, config: FallbackConfig) -> float:
    """Distance inversely proportional to the region's apparent size, clamped."""
    screen_size = (viewport.width + viewport.height) / 2
    size_ratio = max(config.min_size_ratio, region.mean_size / max(1.0, screen_size))
    distance = config.size_scale / size_ratio
    return max(config.min_distance, min(config.max_distance, distance))


def position_from_region(
    region: BoundingRegion,
    viewport: Viewport,
    config: FallbackConfig,
) -> np.ndarray:
    """Place along the camera ray through the region's centre."""
    center = map_point_to_viewport(region.center)
    ndc_x, ndc_y = viewport.to_ndc(center.x, center.y)

    direction = viewport.unproject(ndc_x, ndc_y)
    direction = direction / np.linalg.norm(direction)

    return direction * region_distance(region, viewport, config)


def position_from_hash(identifier: str, config: FallbackConfig) -> np.ndarray:
    """Placeholder position scattered by the identifier hash at a fixed depth."""
    h = string_hash(identifier)
    x = ((h % 200 - 100) / 200) * config.hash_spread
    y = (((h // 200) % 200 - 100) / 200) * config.hash_spread
    return np.array([x, y, -config.hash_depth], dtype=np.float64)
