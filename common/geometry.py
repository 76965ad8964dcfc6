from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np


# -------------------------
# Homography helpers
# -------------------------
def apply_homography(H: np.ndarray, pts_xy: np.ndarray) -> np.ndarray:
    """
    Map (N,2) points through a 3x3 homography.

    Points whose homogeneous w collapses to ~0 land at infinity and come back
    as +inf so that any distance test treats them as outliers.
    """
    pts = np.asarray(pts_xy, dtype=np.float64).reshape(-1, 2)
    pts_h = np.hstack([pts, np.ones((pts.shape[0], 1), dtype=np.float64)])
    q = pts_h @ np.asarray(H, dtype=np.float64).T
    w = q[:, 2:3]
    out = np.full((pts.shape[0], 2), np.inf, dtype=np.float64)
    ok = np.abs(w[:, 0]) > 1e-12
    out[ok] = q[ok, :2] / w[ok]
    return out


def reprojection_errors(H: np.ndarray, src_xy: np.ndarray, dst_xy: np.ndarray) -> np.ndarray:
    """Euclidean distance between H(src) and dst, per point."""
    proj = apply_homography(H, src_xy)
    with np.errstate(invalid="ignore"):
        err = np.linalg.norm(proj - np.asarray(dst_xy, dtype=np.float64).reshape(-1, 2), axis=1)
    err[~np.isfinite(err)] = np.inf
    return err


def rect_corners(width: float, height: float) -> np.ndarray:
    """(0,0), (w,0), (w,h), (0,h) as a (4,2) float64 array."""
    w, h = float(width), float(height)
    return np.array([[0.0, 0.0], [w, 0.0], [w, h], [0.0, h]], dtype=np.float64)


# -------------------------
# Planar measures
# -------------------------
def edge_length(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(float(b[0]) - float(a[0]), float(b[1]) - float(a[1]))


def edge_lengths(quad: np.ndarray) -> Tuple[float, float, float, float]:
    """(top, right, bottom, left) for a quad ordered tl, tr, br, bl."""
    q = np.asarray(quad, dtype=np.float64).reshape(4, 2)
    return (
        edge_length(q[0], q[1]),
        edge_length(q[1], q[2]),
        edge_length(q[2], q[3]),
        edge_length(q[3], q[0]),
    )


def polygon_perimeter(pts: np.ndarray) -> float:
    p = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    return float(np.sum(np.linalg.norm(np.roll(p, -1, axis=0) - p, axis=1)))


def centroid(pts: np.ndarray) -> np.ndarray:
    """Arithmetic mean of the vertices (not the area centroid)."""
    p = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    if p.size == 0:
        return np.zeros(2, dtype=np.float64)
    return p.mean(axis=0)


def cross_z(o: Sequence[float], a: Sequence[float], b: Sequence[float]) -> float:
    """z-component of (a - o) x (b - o)."""
    return (float(a[0]) - float(o[0])) * (float(b[1]) - float(o[1])) - (float(a[1]) - float(o[1])) * (
        float(b[0]) - float(o[0])
    )


def collinear(a, b, c, eps: float = 1e-9):
    """True where the triangle abc is (numerically) degenerate; broadcasts over leading axes."""
    a, b, c = (np.asarray(p, dtype=np.float64) for p in (a, b, c))
    ab, ac = b - a, c - a
    cross = ab[..., 0] * ac[..., 1] - ab[..., 1] * ac[..., 0]
    scale = np.maximum(1.0, np.linalg.norm(ab, axis=-1) * np.linalg.norm(ac, axis=-1))
    return np.abs(cross) <= eps * scale
