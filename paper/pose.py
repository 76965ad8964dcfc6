from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from common.logging_setup import get_logger

log = get_logger("paper.pose")


def camera_matrix(focal_length: float, cx: float, cy: float, image_size: Tuple[int, int]) -> np.ndarray:
    """
    Pinhole K with square pixels and no skew. A principal point <= 0 falls
    back to the image centre; image_size is (width, height).
    """
    W, H = image_size
    px = cx if cx > 0 else W / 2.0
    py = cy if cy > 0 else H / 2.0
    return np.array([[focal_length, 0.0, px],
                     [0.0, focal_length, py],
                     [0.0, 0.0, 1.0]], dtype=np.float64)


def estimate_pose(
    corners: np.ndarray,
    width: float,
    height: float,
    *,
    focal_length: float,
    cx: float = 0.0,
    cy: float = 0.0,
    image_size: Tuple[int, int],
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Pose of a width x height rectangle lying at Z=0 whose image is `corners`
    (tl, tr, br, bl). Returns (rvec, tvec) Rodrigues/translation in the
    rectangle's units, or None when pose is disabled (focal_length <= 0) or
    solvePnP gives up. No lens distortion is modelled.
    """
    if focal_length <= 0:
        return None

    obj = np.array([[0.0, 0.0, 0.0],
                    [width, 0.0, 0.0],
                    [width, height, 0.0],
                    [0.0, height, 0.0]], dtype=np.float64)
    img = np.asarray(corners, dtype=np.float64).reshape(4, 1, 2)
    K = camera_matrix(focal_length, cx, cy, image_size)
    dist = np.zeros((4, 1), dtype=np.float64)

    try:
        ok, rvec, tvec = cv2.solvePnP(obj, img, K, dist)
    except cv2.error as e:
        log.info("solvePnP failed", extra={"extra": {"error": str(e).strip()[:200]}})
        return None
    if not ok or rvec is None or tvec is None:
        log.info("solvePnP found no pose")
        return None
    rvec = rvec.reshape(3).astype(np.float64)
    tvec = tvec.reshape(3).astype(np.float64)
    if not (np.all(np.isfinite(rvec)) and np.all(np.isfinite(tvec))):
        log.info("solvePnP returned non-finite pose")
        return None
    return rvec, tvec
