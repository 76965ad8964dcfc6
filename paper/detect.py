from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

import cv2
import numpy as np

from common.config import DetectionConfig
from common.errors import DecodeError, InvalidInputError
from common.geometry import centroid, edge_lengths, polygon_perimeter, rect_corners
from common.image import ImageLike, decode_gray, to_gray_u8
from common.logging_setup import get_logger
from common.quad import aspect_deviation, aspect_matches, is_convex, order_corners_clockwise, quad_dimensions
from common.types import PaperResult, Status
from paper.pose import estimate_pose
from paper.preprocess import edge_map, external_contours

log = get_logger("paper")


@dataclass(slots=True)
class QuadCandidate:
    corners: np.ndarray      # (4,2) tl, tr, br, bl
    area: float              # contour area (px^2)
    width: float
    height: float
    aspect_ratio: float
    score: float


def evaluate_contour(contour: np.ndarray, image_area: float, min_edge: float, cfg: DetectionConfig) -> Optional[QuadCandidate]:
    """Apply the per-contour filters in order; None as soon as one rejects."""
    area = float(cv2.contourArea(contour))
    if area < cfg.min_area_ratio * image_area or area > cfg.max_area_ratio * image_area:
        return None

    peri = cv2.arcLength(contour, True)
    approx = cv2.approxPolyDP(contour, cfg.poly_epsilon_ratio * peri, True)
    if len(approx) != 4:
        return None

    quad = order_corners_clockwise(approx.reshape(4, 2).astype(np.float64))
    if not is_convex(quad):
        return None
    if min(edge_lengths(quad)) < min_edge:
        return None

    width, height = quad_dimensions(quad)
    aspect = min(width, height) / max(width, height)
    if not aspect_matches(aspect, cfg.expected_aspect_ratio, cfg.aspect_ratio_tolerance):
        return None

    score = area * (1.0 - aspect_deviation(aspect, cfg.expected_aspect_ratio))
    return QuadCandidate(quad, area, width, height, aspect, score)


def best_candidate(candidates: Iterable[Optional[QuadCandidate]]) -> Optional[QuadCandidate]:
    """Highest score wins; the first one seen keeps the spot on ties."""
    best: Optional[QuadCandidate] = None
    for c in candidates:
        if c is not None and (best is None or c.score > best.score):
            best = c
    return best


def find_quad_candidates(gray_u8: np.ndarray, cfg: DetectionConfig) -> List[QuadCandidate]:
    h, w = gray_u8.shape[:2]
    image_area = float(w * h)
    min_edge = cfg.min_edge_ratio * min(w, h)
    contours = external_contours(edge_map(gray_u8, cfg))
    out = [evaluate_contour(c, image_area, min_edge, cfg) for c in contours]
    kept = [c for c in out if c is not None]
    log.debug("contours scored", extra={"extra": {"contours": len(contours), "quads": len(kept)}})
    return kept


def canonical_size(cfg: DetectionConfig, width: float, height: float) -> tuple[float, float]:
    """Physical (w, h), swapped when the detected shape is wider than tall."""
    pw, ph = cfg.width_mm, cfg.height_mm
    if width > height:
        pw, ph = ph, pw
    return pw, ph


def result_from_candidate(c: QuadCandidate, cfg: DetectionConfig, image_size: tuple[int, int]) -> PaperResult:
    pw, ph = canonical_size(cfg, c.width, c.height)
    H = cv2.getPerspectiveTransform(rect_corners(pw, ph).astype(np.float32), c.corners.astype(np.float32))

    pose = estimate_pose(
        c.corners, pw, ph,
        focal_length=cfg.focal_length, cx=cfg.cx, cy=cfg.cy, image_size=image_size,
    )
    rvec, tvec = pose if pose is not None else (None, None)

    return PaperResult(
        status=Status.SUCCESS,
        corners=c.corners,
        center=centroid(c.corners),
        homography=H,
        area=c.area,
        perimeter=polygon_perimeter(c.corners),
        aspect_ratio=c.aspect_ratio,
        rotation_vector=rvec,
        translation_vector=tvec,
    )


def _detect_gray(gray: np.ndarray, cfg: DetectionConfig) -> PaperResult:
    best = best_candidate(find_quad_candidates(gray, cfg))
    if best is None:
        log.debug("no paper quad", extra={"extra": {"size": [gray.shape[1], gray.shape[0]]}})
        return PaperResult.failure(Status.NOT_FOUND)
    res = result_from_candidate(best, cfg, (gray.shape[1], gray.shape[0]))
    log.info(
        "paper detected",
        extra={"extra": {
            "area": round(res.area, 1),
            "aspect": round(res.aspect_ratio, 4),
            "center": [round(float(v), 2) for v in res.center],
            "pose": res.has_pose,
        }},
    )
    return res


# -----------------------------
# Facades (never raise)
# -----------------------------

def detect_paper(image: ImageLike, cfg: Optional[DetectionConfig] = None) -> PaperResult:
    """
    Find the best document-like quadrilateral in a single image.

    `image` is an ImageBuffer or an OpenCV array (gray, BGR or BGRA).
    """
    cfg = cfg or DetectionConfig()
    try:
        gray = to_gray_u8(image)
    except InvalidInputError as e:
        log.warning("invalid image", extra={"extra": {"error": str(e)}})
        return PaperResult.failure(Status.INVALID_INPUT)
    try:
        return _detect_gray(gray, cfg)
    except cv2.error:
        log.warning("opencv error while detecting paper", exc_info=True)
        return PaperResult.failure(Status.INVALID_INPUT)


def detect_paper_encoded(data: bytes, cfg: Optional[DetectionConfig] = None) -> PaperResult:
    cfg = cfg or DetectionConfig()
    try:
        gray = decode_gray(data)
    except DecodeError as e:
        log.warning("decode failed", extra={"extra": {"error": str(e)}})
        return PaperResult.failure(Status.DECODE_FAILURE)
    except InvalidInputError as e:
        log.warning("invalid encoded image", extra={"extra": {"error": str(e)}})
        return PaperResult.failure(Status.INVALID_INPUT)
    try:
        return _detect_gray(gray, cfg)
    except cv2.error:
        log.warning("opencv error while detecting paper", exc_info=True)
        return PaperResult.failure(Status.INVALID_INPUT)
