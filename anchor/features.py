from __future__ import annotations
"""
Feature extraction & matching for the anchor pipeline.

- FeatureExtractor: ORB detect+compute with the configured pyramid/FAST settings
- match_binary_knn_ratio: KNN (k=2) Hamming matcher + Lowe ratio (+ optional one-to-one)
- match_images: both steps over two grayscale images -> Correspondences
"""

from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from common.config import MatchingConfig
from common.logging_setup import get_logger
from common.types import Correspondences

log = get_logger("anchor.features")


# -----------------------------
# Extractor
# -----------------------------

@dataclass
class FeatureExtractor:
    nfeatures: int = 1000
    scale_factor: float = 1.2
    nlevels: int = 8
    edge_threshold: int = 31
    patch_size: int = 31
    fast_threshold: int = 20

    def __post_init__(self):
        self._det = cv2.ORB_create(
            nfeatures=int(self.nfeatures),
            scaleFactor=float(self.scale_factor),
            nlevels=int(self.nlevels),
            edgeThreshold=int(self.edge_threshold),
            firstLevel=0,
            WTA_K=2,
            scoreType=cv2.ORB_HARRIS_SCORE,
            patchSize=int(self.patch_size),
            fastThreshold=int(self.fast_threshold),
        )

    @classmethod
    def from_config(cls, cfg: MatchingConfig) -> "FeatureExtractor":
        return cls(
            nfeatures=cfg.nfeatures,
            scale_factor=cfg.scale_factor,
            nlevels=cfg.nlevels,
            edge_threshold=cfg.edge_threshold,
            patch_size=cfg.patch_size,
            fast_threshold=cfg.fast_threshold,
        )

    def detect_and_compute(self, gray_u8: np.ndarray, mask: Optional[np.ndarray] = None):
        kps, des = self._det.detectAndCompute(gray_u8, mask)
        if des is None:
            des = np.zeros((0, 32), dtype=np.uint8)
        return list(kps), des


# -----------------------------
# Matching
# -----------------------------

def match_binary_knn_ratio(
    des1: np.ndarray,
    des2: np.ndarray,
    *,
    ratio: float = 0.75,
    enforce_uniqueness: bool = False,
) -> List[cv2.DMatch]:
    """
    KNN (k=2) + Lowe ratio on Hamming distances; a match survives iff
    d1 < ratio * d2. Queries with fewer than two neighbours are dropped.
    Optionally enforce one-to-one on the train side (first come, first kept).
    """
    if des1 is None or des2 is None or len(des1) == 0 or len(des2) == 0:
        return []
    bf = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)
    knn = bf.knnMatch(des1, des2, k=2)
    good: List[cv2.DMatch] = []
    used_train = set()
    for pair in knn:
        if len(pair) < 2:
            continue
        m, n = pair
        if m.distance < ratio * n.distance:
            if not enforce_uniqueness or (m.trainIdx not in used_train):
                good.append(m)
                used_train.add(m.trainIdx)
    return good


def correspondences_from_matches(
    kps1: List[cv2.KeyPoint],
    kps2: List[cv2.KeyPoint],
    matches: List[cv2.DMatch],
) -> Correspondences:
    ref = np.float64([kps1[m.queryIdx].pt for m in matches]).reshape(-1, 2)
    scene = np.float64([kps2[m.trainIdx].pt for m in matches]).reshape(-1, 2)
    return Correspondences(ref, scene)


@dataclass
class MatchOutcome:
    ok: bool
    correspondences: Correspondences
    keypoints_ref: int
    keypoints_scene: int
    reason: str = ""

    @property
    def num_matches(self) -> int:
        return len(self.correspondences)


def match_images(
    ref_gray: np.ndarray,
    scene_gray: np.ndarray,
    cfg: Optional[MatchingConfig] = None,
    extractor: Optional[FeatureExtractor] = None,
) -> MatchOutcome:
    """
    Detect, describe and ratio-match two grayscale images.

    ok is False when either image yields fewer than cfg.min_keypoints keypoints
    (or no descriptors); the ratio-test survivors are always returned so the
    caller can report a match count even when a later stage rejects.
    """
    cfg = cfg or MatchingConfig()
    ext = extractor or FeatureExtractor.from_config(cfg)

    kps_ref, des_ref = ext.detect_and_compute(ref_gray)
    kps_scene, des_scene = ext.detect_and_compute(scene_gray)
    n_ref, n_scene = len(kps_ref), len(kps_scene)
    empty = Correspondences(np.zeros((0, 2)), np.zeros((0, 2)))

    if n_ref < cfg.min_keypoints or n_scene < cfg.min_keypoints or len(des_ref) == 0 or len(des_scene) == 0:
        log.debug("too few keypoints", extra={"extra": {"ref": n_ref, "scene": n_scene}})
        return MatchOutcome(False, empty, n_ref, n_scene, reason="keypoints")

    good = match_binary_knn_ratio(des_ref, des_scene, ratio=cfg.ratio, enforce_uniqueness=cfg.enforce_uniqueness)
    corr = correspondences_from_matches(kps_ref, kps_scene, good)
    log.debug("ratio matches", extra={"extra": {"ref": n_ref, "scene": n_scene, "matches": len(corr)}})
    return MatchOutcome(True, corr, n_ref, n_scene)

