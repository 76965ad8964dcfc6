from __future__ import annotations
"""
Quadrilateral plausibility checks shared by the anchor and paper pipelines.

- order_corners_clockwise: tl, tr, br, bl via the sum/difference heuristic
- is_convex: all four vertex cross products share a strict sign
- quad_dimensions / quad_aspect_ratio: mean opposite edges, min/max ratio
- aspect_matches: relative deviation from an expected ratio (paper pipeline)
- aspect_distortion_ok: multiplicative bounds vs. the reference (anchor pipeline)
"""

from typing import Tuple

import numpy as np

from common.geometry import cross_z, edge_lengths


def _as_quad(pts) -> np.ndarray:
    q = np.asarray(pts, dtype=np.float64)
    if q.size != 8:
        raise ValueError(f"quadrilateral needs exactly 4 points, got shape {q.shape}")
    return q.reshape(4, 2)


def _pick(keys: np.ndarray, tie: np.ndarray, largest: bool) -> int:
    # deterministic on values so reordering an ordered quad is a no-op
    order = np.lexsort((tie, -keys if largest else keys))
    return int(order[0])


def _angular_order(q: np.ndarray) -> np.ndarray:
    c = q.mean(axis=0)
    ang = np.arctan2(q[:, 1] - c[1], q[:, 0] - c[0])
    ring = q[np.argsort(ang, kind="stable")]
    start = _pick(ring[:, 0] + ring[:, 1], ring[:, 1], largest=False)
    return np.roll(ring, -start, axis=0)


def order_corners_clockwise(pts) -> np.ndarray:
    """
    Reorder 4 points into clockwise-from-top-left (image coordinates, y down):
      top-left = min(x+y), top-right = min(y-x),
      bottom-right = max(x+y), bottom-left = max(y-x).
    If the heuristic selects one point twice (45° diamonds and the like) the
    points are sorted by angle around their mean instead, starting at min(x+y).
    """
    q = _as_quad(pts)
    s = q[:, 0] + q[:, 1]
    d = q[:, 1] - q[:, 0]
    idx = [
        _pick(s, q[:, 1], largest=False),
        _pick(d, q[:, 0], largest=False),
        _pick(s, q[:, 1], largest=True),
        _pick(d, q[:, 0], largest=True),
    ]
    if len(set(idx)) != 4:
        return _angular_order(q)
    return q[idx].copy()


def vertex_cross_products(pts) -> Tuple[float, float, float, float]:
    q = _as_quad(pts)
    return (
        cross_z(q[0], q[1], q[2]),
        cross_z(q[1], q[2], q[3]),
        cross_z(q[2], q[3], q[0]),
        cross_z(q[3], q[0], q[1]),
    )


def is_convex(pts) -> bool:
    """Convex iff all four cross products are strictly positive or strictly negative."""
    cps = vertex_cross_products(pts)
    return all(c > 0 for c in cps) or all(c < 0 for c in cps)


def quad_dimensions(pts) -> Tuple[float, float]:
    """(width, height) as the means of the horizontal and vertical edge pairs."""
    top, right, bottom, left = edge_lengths(_as_quad(pts))
    return (top + bottom) / 2.0, (left + right) / 2.0


def quad_aspect_ratio(pts) -> float:
    """min(width, height) / max(width, height); 0 for a degenerate quad."""
    w, h = quad_dimensions(pts)
    hi = max(w, h)
    return 0.0 if hi <= 0 else min(w, h) / hi


def aspect_deviation(aspect: float, expected: float) -> float:
    if expected <= 0:
        return 0.0
    return abs(aspect - expected) / expected


def aspect_matches(aspect: float, expected: float, tolerance: float) -> bool:
    """No constraint when expected <= 0."""
    if expected <= 0:
        return True
    return aspect_deviation(aspect, expected) <= tolerance


def aspect_distortion_ok(
    top_edge: float,
    left_edge: float,
    ref_width: float,
    ref_height: float,
    lo: float = 0.3,
    hi: float = 3.0,
) -> bool:
    """
    Anchor pipeline check: (top/left) / (ref_w/ref_h) must lie in [lo, hi].
    """
    if left_edge <= 0 or ref_height <= 0 or ref_width <= 0:
        return False
    distortion = (top_edge / left_edge) / (ref_width / ref_height)
    return lo <= distortion <= hi


def validate_quad(pts, expected_aspect: float = 0.0, tolerance: float = 0.3) -> bool:
    """Convex and (when an expected ratio is set) close enough to it."""
    q = order_corners_clockwise(pts)
    if not is_convex(q):
        return False
    return aspect_matches(quad_aspect_ratio(q), expected_aspect, tolerance)
