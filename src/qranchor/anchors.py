"""
Identifier-keyed anchors.

The registry owns one scene node per marker identifier, throttles updates
with a per-identifier cooldown, and smooths each accepted update halfway
toward its target (lerp for position, slerp for orientation).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterator, Mapping, Optional, Protocol, Tuple

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from .fallback import color_from_identifier
from .pose import MarkerPose

LOGGER = logging.getLogger(__name__)

IDENTITY_QUATERNION = np.array([0.0, 0.0, 0.0, 1.0])


@dataclass(frozen=True)
class NodeGeometry:
    """Box geometry parameters for a marker node."""

    width: float = 0.15
    height: float = 0.15
    depth: float = 0.15
    opacity: float = 0.9


class SceneNode(Protocol):
    """Node handle returned by the rendering surface."""

    def set_transform(self, position: np.ndarray, quaternion: np.ndarray) -> None:
        ...

    def dispose(self) -> None:
        ...


class SceneSurface(Protocol):
    """Node-management interface of the rendering surface."""

    def create_node(
        self,
        name: str,
        geometry: NodeGeometry,
        color: Tuple[float, float, float],
    ) -> SceneNode:
        ...

    def remove_node(self, node: SceneNode) -> None:
        ...


@dataclass
class AnchorConfig:
    """Configuration for anchor smoothing and appearance."""

    cooldown_ms: float = 16.0
    position_smoothing: float = 0.5  # Lerp factor per accepted update
    rotation_smoothing: float = 0.5  # Slerp factor per accepted update
    saturation: float = 0.7
    lightness: float = 0.6
    geometry: NodeGeometry = field(default_factory=NodeGeometry)


@dataclass
class Anchor:
    """A virtual object bound to a marker identifier."""

    identifier: str
    node: SceneNode
    color: Tuple[float, float, float]
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    quaternion: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())
    last_update: Optional[float] = None


def slerp_quaternion(q_from: np.ndarray, q_to: np.ndarray, t: float) -> np.ndarray:
    """Spherical interpolation between scalar-last quaternions."""
    keys = Rotation.from_quat(np.vstack([q_from, q_to]))
    return Slerp([0.0, 1.0], keys)([t]).as_quat()[0]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class AnchorRegistry:
    """
    Owns the mapping from marker identifier to anchor.

    At most one live anchor exists per identifier. Anchors are created on
    first sight, updated in place, and only destroyed in bulk by ``clear``.
    """

    def __init__(
        self,
        surface: SceneSurface,
        config: Optional[AnchorConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.surface = surface
        self.config = config or AnchorConfig()
        self._clock = clock or _monotonic_ms
        self._anchors: Dict[str, Anchor] = {}
        self._cooldowns: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._anchors)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._anchors

    def __iter__(self) -> Iterator[Anchor]:
        return iter(list(self._anchors.values()))

    @property
    def anchor_count(self) -> int:
        return len(self._anchors)

    @property
    def cooldowns(self) -> Mapping[str, float]:
        """Read-only view of identifier -> last accepted update (ms)."""
        return MappingProxyType(self._cooldowns)

    def get(self, identifier: str) -> Optional[Anchor]:
        return self._anchors.get(identifier)

    def now(self) -> float:
        return self._clock()

    def accepts(self, identifier: str, now: float) -> bool:
        """Whether an update at ``now`` falls outside the identifier's cooldown."""
        last = self._cooldowns.get(identifier)
        return last is None or now - last >= self.config.cooldown_ms

    def upsert(
        self,
        identifier: str,
        pose: Optional[MarkerPose] = None,
        position: Optional[np.ndarray] = None,
        timestamp: Optional[float] = None,
    ) -> bool:
        """Create or update the anchor for ``identifier``.

        Args:
            identifier: Normalized marker identifier
            pose: Full pose; moves and rotates the anchor
            position: Approximate render-space position; moves only
            timestamp: Update time in milliseconds (defaults to the clock)

        Returns:
            True if the update was applied, False if the cooldown dropped it
        """
        if pose is None and position is None:
            raise ValueError("upsert needs either a pose or a position")

        now = self._clock() if timestamp is None else timestamp
        if not self.accepts(identifier, now):
            LOGGER.debug("Update for %r dropped by cooldown", identifier)
            return False

        anchor = self._anchors.get(identifier)
        if anchor is None:
            anchor = self._create_anchor(identifier)

        target = pose.position if pose is not None else np.asarray(position, dtype=np.float64)
        anchor.position = anchor.position + (target - anchor.position) * self.config.position_smoothing

        if pose is not None:
            anchor.quaternion = slerp_quaternion(
                anchor.quaternion, pose.quaternion, self.config.rotation_smoothing
            )

        anchor.last_update = now
        self._cooldowns[identifier] = now
        anchor.node.set_transform(anchor.position.copy(), anchor.quaternion.copy())
        return True

    def clear(self):
        """Dispose every node and forget all anchors and cooldowns."""
        for anchor in list(self._anchors.values()):
            self._dispose_anchor(anchor)
        self._anchors.clear()
        self._cooldowns.clear()

    def _create_anchor(self, identifier: str) -> Anchor:
        color = color_from_identifier(
            identifier,
            saturation=self.config.saturation,
            lightness=self.config.lightness,
        )
        node = self.surface.create_node(identifier, self.config.geometry, color)
        anchor = Anchor(identifier=identifier, node=node, color=color)
        self._anchors[identifier] = anchor
        LOGGER.info("Created anchor for %r", identifier)
        return anchor

    def _dispose_anchor(self, anchor: Anchor):
        anchor.node.dispose()
        self.surface.remove_node(anchor.node)
        self._anchors.pop(anchor.identifier, None)
        self._cooldowns.pop(anchor.identifier, None)
        LOGGER.debug("Disposed anchor for %r", anchor.identifier)
