"""
Placement error types.

Every error here is recoverable: the scene catches them and degrades to a
lower-fidelity placement strategy.
"""


class PlacementError(Exception):
    """Base class for failures in the marker placement pipeline."""


class InsufficientCorners(PlacementError):
    """Fewer than four corner points were supplied for a corner-based pose."""

    def __init__(self, count: int):
        super().__init__(f"Need at least 4 corner points, got {count}")
        self.count = count


class SingularSystem(PlacementError):
    """The homography solve could not produce a usable result."""


class DegeneratePose(PlacementError):
    """The homography's leading column collapsed during decomposition."""
