"""
Unit tests for quadrilateral validation (common.quad) and geometry helpers
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.geometry import apply_homography, collinear, edge_lengths, polygon_perimeter, rect_corners
from common.quad import (
    aspect_distortion_ok,
    aspect_matches,
    is_convex,
    order_corners_clockwise,
    quad_aspect_ratio,
    quad_dimensions,
    validate_quad,
)


SQUARE = np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float)


class TestCornerOrdering:
    """Clockwise-from-top-left reordering"""

    def test_shuffled_rectangle(self):
        """Any permutation of a rectangle comes back tl, tr, br, bl"""
        rect = np.array([[100, 50], [300, 50], [300, 200], [100, 200]], dtype=float)
        for perm in ([2, 0, 3, 1], [3, 2, 1, 0], [1, 3, 0, 2]):
            out = order_corners_clockwise(rect[perm])
            np.testing.assert_array_equal(out, rect)

    def test_rotated_quad(self):
        """A mildly rotated sheet keeps the expected roles"""
        q = np.array([[120, 80], [330, 110], [300, 400], [90, 370]], dtype=float)
        out = order_corners_clockwise(q[::-1])
        np.testing.assert_array_equal(out, q)

    def test_reordering_is_idempotent(self):
        """Ordering an already-ordered quad is a no-op"""
        quads = [
            SQUARE,
            np.array([[120, 80], [330, 110], [300, 400], [90, 370]], dtype=float),
            np.array([[50, 0], [100, 50], [50, 100], [0, 50]], dtype=float),  # 45 degree diamond
        ]
        for q in quads:
            once = order_corners_clockwise(q)
            twice = order_corners_clockwise(once)
            np.testing.assert_array_equal(once, twice)

    def test_diamond_falls_back_to_angular_order(self):
        """Ties in x+y / y-x still give four distinct corners"""
        diamond = np.array([[50, 100], [0, 50], [100, 50], [50, 0]], dtype=float)
        out = order_corners_clockwise(diamond)
        assert len({tuple(p) for p in out}) == 4
        assert is_convex(out)

    def test_wrong_point_count(self):
        """Only 4-point inputs are accepted"""
        with pytest.raises(ValueError):
            order_corners_clockwise(np.zeros((3, 2)))


class TestConvexity:
    """Signed cross products at all four vertices"""

    def test_convex_both_orientations(self):
        """Clockwise and counter-clockwise convex quads pass"""
        assert is_convex(SQUARE)
        assert is_convex(SQUARE[::-1])

    def test_reflex_vertex_rejected(self):
        """A dart (one reflex vertex) is not convex"""
        dart = np.array([[0, 0], [10, 0], [3, 3], [0, 10]], dtype=float)
        assert not is_convex(dart)

    def test_self_intersecting_rejected(self):
        """A bow-tie ordering is not convex"""
        bowtie = np.array([[0, 0], [10, 10], [10, 0], [0, 10]], dtype=float)
        assert not is_convex(bowtie)

    def test_degenerate_rejected(self):
        """Three collinear corners give a zero cross product"""
        flat = np.array([[0, 0], [5, 0], [10, 0], [0, 10]], dtype=float)
        assert not is_convex(flat)

    def test_random_rotations_of_convex_quad(self):
        """Convexity holds regardless of orientation"""
        rng = np.random.default_rng(3)
        q = np.array([[0, 0], [40, 5], [35, 30], [-5, 25]], dtype=float)
        for _ in range(20):
            a = rng.uniform(0, 2 * np.pi)
            R = np.array([[np.cos(a), -np.sin(a)], [np.sin(a), np.cos(a)]])
            assert is_convex(q @ R.T + rng.uniform(-100, 100, 2))


class TestAspect:
    """Aspect ratio measures and the two tolerance checks"""

    def test_dimensions(self):
        """Width/height are means of opposite edges"""
        q = np.array([[0, 0], [20, 0], [20, 10], [0, 10]], dtype=float)
        assert quad_dimensions(q) == (20.0, 10.0)
        assert quad_aspect_ratio(q) == pytest.approx(0.5)

    def test_relative_deviation(self):
        """|a - e| / e is compared against the tolerance"""
        assert aspect_matches(0.70, 0.707, 0.3)
        assert not aspect_matches(1.0, 0.707, 0.3)
        assert aspect_matches(1.0, 0.0, 0.0)  # no expected ratio, no constraint

    def test_distortion_bounds(self):
        """(top/left) / (w/h) must stay within [0.3, 3.0]"""
        assert aspect_distortion_ok(100, 100, 100, 100)
        assert aspect_distortion_ok(300, 100, 100, 100)
        assert not aspect_distortion_ok(301, 100, 100, 100)
        assert not aspect_distortion_ok(29, 100, 100, 100)
        assert not aspect_distortion_ok(10, 0, 100, 100)

    def test_validate_quad(self):
        """Convexity plus aspect in one call"""
        a4 = np.array([[0, 0], [210, 0], [210, 297], [0, 297]], dtype=float)
        assert validate_quad(a4, 210 / 297, 0.1)
        assert not validate_quad(SQUARE, 210 / 297, 0.1)
        assert validate_quad(SQUARE)


class TestGeometry:
    """Small planar helpers"""

    def test_rect_corners_round_trip(self):
        """A homography maps the reference rectangle where it says it does"""
        H = np.array([[1.2, 0.1, 30], [-0.05, 0.9, 40], [1e-4, 2e-4, 1.0]])
        src = rect_corners(200, 100)
        dst = apply_homography(H, src)
        p = np.hstack([src, np.ones((4, 1))]) @ H.T
        np.testing.assert_allclose(dst, p[:, :2] / p[:, 2:3])

    def test_point_at_infinity(self):
        """w == 0 maps to inf"""
        H = np.array([[1, 0, 0], [0, 1, 0], [1, 0, 0]], dtype=float)
        out = apply_homography(H, np.array([[0.0, 5.0]]))
        assert np.all(np.isinf(out))

    def test_edges_and_perimeter(self):
        """(top, right, bottom, left) and their sum"""
        q = rect_corners(3, 4)
        assert edge_lengths(q) == (3.0, 4.0, 3.0, 4.0)
        assert polygon_perimeter(q) == pytest.approx(14.0)

    def test_collinear(self):
        assert collinear((0, 0), (1, 1), (2, 2))
        assert not collinear((0, 0), (1, 0), (0, 1))
