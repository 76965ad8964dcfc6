from __future__ import annotations
"""
Edge-map preprocessing for the contour pipeline:
- Gaussian blur (odd kernel, 0 disables)
- Canny with two-threshold hysteresis
- Rectangular dilation to close small gaps along the outline
- External contour extraction
"""

from typing import List

import cv2
import numpy as np

from common.config import DetectionConfig


def blur(gray_u8: np.ndarray, ksize: int) -> np.ndarray:
    if ksize <= 0 or ksize % 2 == 0:
        return gray_u8
    return cv2.GaussianBlur(gray_u8, (int(ksize), int(ksize)), 0)


def canny_edges(gray_u8: np.ndarray, lo: int = 50, hi: int = 150) -> np.ndarray:
    return cv2.Canny(gray_u8, threshold1=int(lo), threshold2=int(hi))


def dilate(edges: np.ndarray, ksize: int = 3) -> np.ndarray:
    if ksize <= 0:
        return edges
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (int(ksize), int(ksize)))
    return cv2.dilate(edges, kernel)


def edge_map(gray_u8: np.ndarray, cfg: DetectionConfig) -> np.ndarray:
    g = blur(gray_u8, cfg.blur_kernel_size)
    e = canny_edges(g, cfg.canny_low, cfg.canny_high)
    return dilate(e, cfg.dilate_kernel_size)


def external_contours(edges: np.ndarray) -> List[np.ndarray]:
    # OpenCV 4 returns (contours, hierarchy); 3.x prepended the image
    found = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    contours = found[0] if len(found) == 2 else found[1]
    return list(contours)
