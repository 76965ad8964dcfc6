from __future__ import annotations

import math
from typing import Callable, Optional, Sequence, Tuple

import cv2
import numpy as np

from anchor.features import match_images
from anchor.ransac import HomographyFit, estimate_homography
from common.config import MatchingConfig
from common.errors import DecodeError, InvalidInputError
from common.geometry import apply_homography, centroid, edge_lengths, rect_corners
from common.image import ImageLike, decode_gray, to_gray_u8
from common.logging_setup import get_logger
from common.quad import aspect_distortion_ok, is_convex
from common.types import AnchorResult, Correspondences, Status

log = get_logger("anchor")


def accept_fit(fit: HomographyFit, cfg: MatchingConfig) -> bool:
    """Inlier count must reach both the absolute floor and the fraction of all correspondences."""
    if not fit.ok:
        return False
    return fit.inliers >= cfg.min_inliers and fit.inliers >= cfg.min_inlier_ratio * fit.total


def result_from_homography(
    H: np.ndarray,
    ref_size: Tuple[float, float],
    cfg: MatchingConfig,
    *,
    num_matches: int = 0,
    num_inliers: int = 0,
    rmse_px: float = 0.0,
) -> AnchorResult:
    """
    Map the reference rectangle through H and check the resulting quadrilateral.

    Corners keep the reference order (0,0), (w,0), (w,h), (0,h), so applying H
    to those four points reproduces them exactly. NOT_FOUND when the quad is
    not convex or its edge ratio is too far from the reference's.
    """
    w, h = float(ref_size[0]), float(ref_size[1])
    corners = apply_homography(H, rect_corners(w, h))
    if not np.all(np.isfinite(corners)):
        log.debug("reference corner maps to infinity")
        return AnchorResult.failure(Status.NOT_FOUND, num_matches, num_inliers)

    if not is_convex(corners):
        log.debug("non-convex quad", extra={"extra": {"corners": corners.round(2).tolist()}})
        return AnchorResult.failure(Status.NOT_FOUND, num_matches, num_inliers)

    top, _right, _bottom, left = edge_lengths(corners)
    if not aspect_distortion_ok(top, left, w, h, cfg.min_aspect_distortion, cfg.max_aspect_distortion):
        log.debug("aspect distortion out of bounds", extra={"extra": {"top": top, "left": left, "w": w, "h": h}})
        return AnchorResult.failure(Status.NOT_FOUND, num_matches, num_inliers)

    dx, dy = corners[1] - corners[0]
    return AnchorResult(
        status=Status.SUCCESS,
        corners=corners,
        center=centroid(corners),
        rotation=math.atan2(dy, dx),
        scale=(top / w + left / h) / 2.0,
        homography=H,
        num_matches=num_matches,
        num_inliers=num_inliers,
        rmse_px=rmse_px,
    )


def _fit_and_describe(
    corr: Correspondences,
    ref_size: Tuple[float, float],
    cfg: MatchingConfig,
    rng: Optional[np.random.Generator],
) -> AnchorResult:
    fit = estimate_homography(
        corr,
        threshold=cfg.ransac_reproj_px,
        max_iters=cfg.ransac_max_iters,
        rng=rng,
        seed=cfg.ransac_seed,
    )
    if not accept_fit(fit, cfg):
        log.debug(
            "homography rejected",
            extra={"extra": {"matches": len(corr), "inliers": fit.inliers, "ok": fit.ok}},
        )
        return AnchorResult.failure(Status.NOT_FOUND, len(corr), fit.inliers)

    res = result_from_homography(
        fit.H, ref_size, cfg, num_matches=len(corr), num_inliers=fit.inliers, rmse_px=fit.rmse_px
    )
    if res.is_valid:
        log.info(
            "anchor located",
            extra={"extra": {
                "matches": res.num_matches,
                "inliers": res.num_inliers,
                "rmse_px": round(res.rmse_px, 3),
                "center": [round(float(v), 2) for v in res.center],
                "scale": round(res.scale, 4),
            }},
        )
    return res


# -----------------------------
# Facades (never raise)
# -----------------------------

def _locate_correspondences(
    build: Callable[[], Correspondences],
    ref_size: Tuple[float, float],
    cfg: Optional[MatchingConfig],
    rng: Optional[np.random.Generator],
) -> AnchorResult:
    cfg = cfg or MatchingConfig()
    try:
        corr = build()
        if len(corr) < 4:
            raise InvalidInputError(f"need at least 4 correspondences, got {len(corr)}")
        if not (np.all(np.isfinite(corr.ref)) and np.all(np.isfinite(corr.scene))):
            raise InvalidInputError("correspondences contain non-finite values")
        w, h = float(ref_size[0]), float(ref_size[1])
        if not (w > 0 and h > 0):
            raise InvalidInputError(f"reference size must be positive, got {ref_size}")
    except (InvalidInputError, ValueError, TypeError, IndexError) as e:
        log.warning("invalid correspondences", extra={"extra": {"error": str(e)}})
        return AnchorResult.failure(Status.INVALID_INPUT)

    try:
        return _fit_and_describe(corr, (w, h), cfg, rng)
    except cv2.error:
        log.warning("opencv error while fitting", exc_info=True)
        return AnchorResult.failure(Status.INVALID_INPUT, len(corr))


def locate_from_points(
    ref_pts: Sequence[Sequence[float]],
    scene_pts: Sequence[Sequence[float]],
    ref_size: Tuple[float, float],
    cfg: Optional[MatchingConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> AnchorResult:
    """
    Anchor pose from caller-supplied correspondences ref_pts[i] <-> scene_pts[i].

    ref_size is the (width, height) of the reference in ref_pts units and
    defines the rectangle whose image is reported as the corners.
    """
    return _locate_correspondences(lambda: Correspondences(ref_pts, scene_pts), ref_size, cfg, rng)


def locate_from_arrays(
    ref_x: Sequence[float],
    ref_y: Sequence[float],
    scene_x: Sequence[float],
    scene_y: Sequence[float],
    ref_size: Tuple[float, float],
    cfg: Optional[MatchingConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> AnchorResult:
    """locate_from_points with the coordinates as four parallel arrays."""
    return _locate_correspondences(
        lambda: Correspondences.from_arrays(ref_x, ref_y, scene_x, scene_y), ref_size, cfg, rng
    )


def _locate_gray(
    anchor_gray: np.ndarray,
    scene_gray: np.ndarray,
    cfg: MatchingConfig,
    rng: Optional[np.random.Generator],
) -> AnchorResult:
    out = match_images(anchor_gray, scene_gray, cfg)
    if not out.ok:
        return AnchorResult.failure(Status.NOT_FOUND)
    if out.num_matches < cfg.min_matches:
        log.debug("too few ratio matches", extra={"extra": {"matches": out.num_matches, "need": cfg.min_matches}})
        return AnchorResult.failure(Status.NOT_FOUND, out.num_matches)
    h, w = anchor_gray.shape[:2]
    return _fit_and_describe(out.correspondences, (float(w), float(h)), cfg, rng)


def locate_anchor(
    anchor: ImageLike,
    scene: ImageLike,
    cfg: Optional[MatchingConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> AnchorResult:
    """
    Find the anchor image inside the scene image.

    Both inputs are ImageBuffers or OpenCV arrays (gray, BGR or BGRA). The
    reported corners are the anchor's full frame mapped into the scene.
    """
    cfg = cfg or MatchingConfig()
    try:
        anchor_gray = to_gray_u8(anchor)
        scene_gray = to_gray_u8(scene)
    except InvalidInputError as e:
        log.warning("invalid image", extra={"extra": {"error": str(e)}})
        return AnchorResult.failure(Status.INVALID_INPUT)
    try:
        return _locate_gray(anchor_gray, scene_gray, cfg, rng)
    except cv2.error:
        log.warning("opencv error while locating anchor", exc_info=True)
        return AnchorResult.failure(Status.INVALID_INPUT)


def locate_anchor_encoded(
    anchor_bytes: bytes,
    scene_bytes: bytes,
    cfg: Optional[MatchingConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> AnchorResult:
    """Same as locate_anchor for compressed images (PNG, JPEG, ...)."""
    cfg = cfg or MatchingConfig()
    try:
        anchor_gray = decode_gray(anchor_bytes, which="anchor")
        scene_gray = decode_gray(scene_bytes, which="scene")
    except DecodeError as e:
        log.warning("decode failed", extra={"extra": {"which": e.which, "error": str(e)}})
        status = Status.SCENE_DECODE_FAILURE if e.which == "scene" else Status.DECODE_FAILURE
        return AnchorResult.failure(status)
    except InvalidInputError as e:
        log.warning("invalid encoded image", extra={"extra": {"error": str(e)}})
        return AnchorResult.failure(Status.INVALID_INPUT)
    try:
        return _locate_gray(anchor_gray, scene_gray, cfg, rng)
    except cv2.error:
        log.warning("opencv error while locating anchor", exc_info=True)
        return AnchorResult.failure(Status.INVALID_INPUT)
