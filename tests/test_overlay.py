"""
Tests for the OpenCV rendering surface.
"""

import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from qranchor.anchors import NodeGeometry  # type: ignore
from qranchor.overlay import CubeNode, OpenCVSceneSurface  # type: ignore
from qranchor.pose import CameraIntrinsics  # type: ignore


class TestCubeNode(unittest.TestCase):
    """Test cases for CubeNode."""

    def test_color_is_stored_as_bgr(self):
        node = CubeNode("QR-A", NodeGeometry(), (1.0, 0.0, 0.5))
        self.assertEqual(node.color, (128, 0, 255))

    def test_world_vertices_follow_transform(self):
        node = CubeNode("QR-A", NodeGeometry(), (1.0, 1.0, 1.0))
        node.set_transform(np.array([0.0, 0.0, -1.0]), np.array([0.0, 0.0, 0.0, 1.0]))

        vertices = node.world_vertices()
        np.testing.assert_allclose(vertices.mean(axis=0), [0.0, 0.0, -1.0], atol=1e-12)
        np.testing.assert_allclose(vertices.max(axis=0) - vertices.min(axis=0), [0.15] * 3)

    def test_disposed_node_ignores_transforms(self):
        node = CubeNode("QR-A", NodeGeometry(), (1.0, 1.0, 1.0))
        node.dispose()
        node.set_transform(np.ones(3), np.array([0.0, 0.0, 0.0, 1.0]))

        self.assertTrue(node.disposed)
        self.assertEqual(node.transform_updates, 0)
        self.assertIsNone(node.world_vertices())


class TestOpenCVSceneSurface(unittest.TestCase):
    """Test cases for OpenCVSceneSurface."""

    def setUp(self):
        self.surface = OpenCVSceneSurface({'show_labels': False})
        self.intrinsics = CameraIntrinsics.from_viewport(640, 480, 60.0)
        self.frame = np.zeros((480, 640, 3), dtype=np.uint8)

    def test_create_and_remove(self):
        node = self.surface.create_node("QR-A", NodeGeometry(), (0.2, 0.4, 0.6))
        self.assertEqual(self.surface.nodes, [node])

        self.surface.remove_node(node)
        self.assertEqual(self.surface.nodes, [])
        self.surface.remove_node(node)

    def test_renders_node_in_front_of_camera(self):
        node = self.surface.create_node("QR-A", NodeGeometry(), (1.0, 1.0, 1.0))
        node.set_transform(np.array([0.0, 0.0, -1.0]), np.array([0.0, 0.0, 0.0, 1.0]))

        result = self.surface.render(self.frame.copy(), self.intrinsics)

        self.assertEqual(result.shape, self.frame.shape)
        self.assertGreater(int(result.sum()), 0)
        # Drawn around the image centre
        ys, xs = np.nonzero(result.sum(axis=2))
        self.assertTrue(250 < xs.mean() < 390)
        self.assertTrue(170 < ys.mean() < 310)

    def test_node_behind_camera_is_skipped(self):
        node = self.surface.create_node("QR-A", NodeGeometry(), (1.0, 1.0, 1.0))
        node.set_transform(np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, 0.0, 1.0]))

        result = self.surface.render(self.frame.copy(), self.intrinsics)
        self.assertEqual(int(result.sum()), 0)

    def test_tick_spins_nodes(self):
        node = self.surface.create_node("QR-A", NodeGeometry(), (1.0, 1.0, 1.0))
        self.surface.tick()
        self.surface.tick()
        np.testing.assert_allclose(node.spin, [0.01, 0.02])

        still = OpenCVSceneSurface({'animate': False})
        other = still.create_node("QR-B", NodeGeometry(), (1.0, 1.0, 1.0))
        still.tick()
        np.testing.assert_allclose(other.spin, [0.0, 0.0])

    def test_cleanup_disposes_nodes(self):
        node = self.surface.create_node("QR-A", NodeGeometry(), (1.0, 1.0, 1.0))
        self.surface.cleanup()
        self.assertTrue(node.disposed)
        self.assertEqual(self.surface.nodes, [])


if __name__ == '__main__':
    unittest.main()
