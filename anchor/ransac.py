from __future__ import annotations
"""
Robust homography estimation (reference -> scene) by random-sample consensus.

- dlt_homography: normalized DLT over >= 4 correspondences (exact for 4, least squares above)
- estimate_homography: fixed-budget RANSAC with a caller-supplied numpy Generator,
  least-squares refit on the consensus set, inlier RMSE
"""

from dataclasses import dataclass
from itertools import combinations
from typing import Optional, Tuple

import numpy as np

from common.geometry import collinear, reprojection_errors
from common.logging_setup import get_logger
from common.types import Correspondences

log = get_logger("anchor.ransac")

MIN_SAMPLE = 4
# RANSAC iterations evaluated per vectorized block
BLOCK = 256


@dataclass
class HomographyFit:
    H: Optional[np.ndarray]
    inlier_mask: np.ndarray
    inliers: int
    total: int
    rmse_px: float
    iterations: int = 0

    @property
    def ok(self) -> bool:
        return self.H is not None

    @property
    def inlier_ratio(self) -> float:
        return 0.0 if self.total == 0 else self.inliers / self.total


def _not_found(total: int, iterations: int = 0) -> HomographyFit:
    return HomographyFit(None, np.zeros(total, dtype=bool), 0, total, float("inf"), iterations)


# -----------------------------
# DLT
# -----------------------------

def _hartley(pts: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-set similarity T moving the centroid to 0 and the mean distance to sqrt(2).
    pts is (B,N,2); returns (B,3,3) transforms and the normalized points.
    """
    c = pts.mean(axis=1, keepdims=True)
    d = np.sqrt(((pts - c) ** 2).sum(axis=-1)).mean(axis=1)
    usable = d > 1e-12
    s = np.where(usable, np.sqrt(2.0) / np.where(usable, d, 1.0), 1.0)
    T = np.zeros((pts.shape[0], 3, 3), dtype=np.float64)
    T[:, 0, 0] = s
    T[:, 1, 1] = s
    T[:, 0, 2] = -s * c[:, 0, 0]
    T[:, 1, 2] = -s * c[:, 0, 1]
    T[:, 2, 2] = 1.0
    return T, (pts - c) * s[:, None, None]


def _dlt_batch(src: np.ndarray, dst: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Normalized DLT for a stack of point sets, (B,N,2) each, N >= 4.

    Returns (B,3,3) homographies scaled to H[2,2] == 1 (unit norm when that
    entry vanishes) and a (B,) mask that is False
    for rank-deficient systems, singular or non-finite H.
    """
    B, n = src.shape[:2]
    T1, s = _hartley(src)
    T2, d = _hartley(dst)

    A = np.zeros((B, 2 * n, 9), dtype=np.float64)
    x, y = s[..., 0], s[..., 1]
    u, v = d[..., 0], d[..., 1]
    A[:, 0::2, 0] = -x
    A[:, 0::2, 1] = -y
    A[:, 0::2, 2] = -1.0
    A[:, 0::2, 6] = u * x
    A[:, 0::2, 7] = u * y
    A[:, 0::2, 8] = u
    A[:, 1::2, 3] = -x
    A[:, 1::2, 4] = -y
    A[:, 1::2, 5] = -1.0
    A[:, 1::2, 6] = v * x
    A[:, 1::2, 7] = v * y
    A[:, 1::2, 8] = v

    try:
        _, sv, Vt = np.linalg.svd(A)
    except np.linalg.LinAlgError:
        return np.tile(np.eye(3), (B, 1, 1)), np.zeros(B, dtype=bool)
    # a second null direction means the points do not pin down a unique H
    ok = sv[:, 7] > 1e-10 * np.maximum(1.0, sv[:, 0])

    # unit-norm solution in normalized coordinates, so det is scale-free here
    Hn = Vt[:, -1].reshape(B, 3, 3)
    ok &= np.abs(np.linalg.det(Hn)) >= 1e-10
    H = np.linalg.inv(T2) @ Hn @ T1
    ok &= np.all(np.isfinite(H), axis=(1, 2))

    h22 = H[:, 2, 2]
    fro = np.linalg.norm(H, axis=(1, 2))
    scale = np.where(np.abs(h22) > 1e-12, h22, np.where(fro > 0, fro, 1.0))
    with np.errstate(invalid="ignore", divide="ignore"):
        H = H / scale[:, None, None]
    return H, ok


def dlt_homography(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """
    H with dst ~ H @ src for (N,2) arrays, N >= 4.
    Returns None for degenerate input (rank-deficient system, singular H).
    """
    src = np.asarray(src, dtype=np.float64).reshape(-1, 2)
    dst = np.asarray(dst, dtype=np.float64).reshape(-1, 2)
    n = src.shape[0]
    if n < MIN_SAMPLE or dst.shape[0] != n:
        return None
    H, ok = _dlt_batch(src[None], dst[None])
    return H[0] if ok[0] else None


# -----------------------------
# Sampling and scoring
# -----------------------------

_TRIPLES = np.array(list(combinations(range(MIN_SAMPLE), 3)))


def _draw_samples(rng: np.random.Generator, n: int, count: int) -> np.ndarray:
    """(count, 4) rows of distinct indices in [0, n)."""
    keys = rng.random((count, n))
    return np.argpartition(keys, MIN_SAMPLE - 1, axis=1)[:, :MIN_SAMPLE]


def _degenerate(samples: np.ndarray) -> np.ndarray:
    """(B,4,2) -> (B,) True where any three of the four points are collinear."""
    a = samples[:, _TRIPLES[:, 0]]
    b = samples[:, _TRIPLES[:, 1]]
    c = samples[:, _TRIPLES[:, 2]]
    return collinear(a, b, c).any(axis=1)


def _inlier_masks(Hs: np.ndarray, corr: Correspondences, threshold: float) -> np.ndarray:
    """(B,3,3) models -> (B,N) masks of reprojection error < threshold."""
    p = np.hstack([corr.ref, np.ones((len(corr), 1))])
    q = Hs @ p.T
    w = q[:, 2]
    with np.errstate(invalid="ignore", divide="ignore"):
        err = np.hypot(q[:, 0] / w - corr.scene[:, 0], q[:, 1] / w - corr.scene[:, 1])
    # points sent to infinity are outliers
    return (np.abs(w) > 1e-12) & np.isfinite(err) & (err < threshold)


def _score(H: np.ndarray, corr: Correspondences, threshold: float) -> Tuple[np.ndarray, int]:
    mask = _inlier_masks(H[None], corr, threshold)[0]
    return mask, int(mask.sum())


def _rmse(H: np.ndarray, corr: Correspondences, mask: np.ndarray) -> float:
    if not mask.any():
        return float("inf")
    err = reprojection_errors(H, corr.ref[mask], corr.scene[mask])
    return float(np.sqrt(np.mean(err ** 2)))


# -----------------------------
# RANSAC
# -----------------------------

def estimate_homography(
    corr: Correspondences,
    *,
    threshold: float = 5.0,
    max_iters: int = 2000,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = 0,
) -> HomographyFit:
    """
    Fit H: ref -> scene.

    Runs exactly max_iters minimal-sample iterations (stopping early only when
    a model explains every correspondence). The first model with the strictly
    largest inlier count wins; it is then refit on its inliers and the refit is
    kept unless it explains fewer correspondences.

    Samples are drawn, checked and scored in blocks of BLOCK iterations; the
    outcome is the same as visiting them one at a time in draw order.

    Args:
        corr: correspondences (N < 4 returns not-found without fitting)
        threshold: inlier reprojection distance (scene units), strict
        max_iters: sampling budget
        rng: random source; default_rng(seed) when None
        seed: seed for the default generator (None = OS entropy)
    """
    n = len(corr)
    if n < MIN_SAMPLE:
        return _not_found(n)
    if threshold <= 0 or max_iters < 1:
        raise ValueError("threshold must be > 0 and max_iters >= 1")
    rng = rng if rng is not None else np.random.default_rng(seed)

    best_H: Optional[np.ndarray] = None
    best_mask = np.zeros(n, dtype=bool)
    best_count = 0
    it = 0
    while it < max_iters:
        m = min(BLOCK, max_iters - it)
        idx = _draw_samples(rng, n, m)
        src, dst = corr.ref[idx], corr.scene[idx]
        Hs, usable = _dlt_batch(src, dst)
        usable &= ~(_degenerate(src) | _degenerate(dst))

        counts = np.zeros(m, dtype=np.int64)
        masks = np.zeros((m, n), dtype=bool)
        if usable.any():
            masks[usable] = _inlier_masks(Hs[usable], corr, threshold)
            counts[usable] = masks[usable].sum(axis=1)

        # argmax is the first maximum, i.e. the earliest draw
        k = int(np.argmax(counts))
        if counts[k] > best_count:
            best_H, best_mask, best_count = Hs[k], masks[k], int(counts[k])
            if best_count == n:
                it += k + 1
                break
        it += m

    if best_H is None:
        log.debug("no non-degenerate sample", extra={"extra": {"n": n, "iters": it}})
        return _not_found(n, it)

    if best_count >= MIN_SAMPLE:
        H_ref = dlt_homography(corr.ref[best_mask], corr.scene[best_mask])
        if H_ref is not None:
            mask_ref, count_ref = _score(H_ref, corr, threshold)
            if count_ref >= best_count:
                best_H, best_mask, best_count = H_ref, mask_ref, count_ref

    rmse = _rmse(best_H, corr, best_mask)
    log.debug(
        "ransac done",
        extra={"extra": {"n": n, "inliers": best_count, "iters": it, "rmse_px": round(rmse, 4)}},
    )
    return HomographyFit(best_H, best_mask, best_count, n, rmse, it)
