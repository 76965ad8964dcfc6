from __future__ import annotations
"""
Configuration for both pipelines.

- DetectionConfig: contour/paper pipeline thresholds, physical size, intrinsics
- PRESETS: named DetectionConfigs (ISO A-series, US paper, cards, square, any)
- MatchingConfig: ORB + ratio test + RANSAC acceptance policy (anchor pipeline)
- load_params(): config/params.yaml -> dict (built-in defaults if missing)
"""

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


# -----------------------------
# Paper / contour pipeline
# -----------------------------

@dataclass(frozen=True)
class DetectionConfig:
    canny_low: int = 50
    canny_high: int = 150
    blur_kernel_size: int = 5          # odd, or 0 to disable
    min_area_ratio: float = 0.05       # contour area / image area
    max_area_ratio: float = 0.95
    expected_aspect_ratio: float = 210.0 / 297.0   # min/max side; 0 disables the check
    aspect_ratio_tolerance: float = 0.3            # relative deviation
    width_mm: float = 210.0            # physical size (pose/homography units)
    height_mm: float = 297.0
    focal_length: float = 0.0          # pixels; <= 0 skips pose
    cx: float = 0.0                    # principal point; <= 0 means image centre
    cy: float = 0.0
    poly_epsilon_ratio: float = 0.035  # approxPolyDP tolerance / arc length
    min_edge_ratio: float = 0.05       # shortest quad edge / min(image w, h)
    dilate_kernel_size: int = 3

    def __post_init__(self) -> None:
        if self.canny_low < 0 or self.canny_high < self.canny_low:
            raise ValueError(f"invalid canny thresholds: {self.canny_low}/{self.canny_high}")
        if self.blur_kernel_size < 0 or (self.blur_kernel_size > 0 and self.blur_kernel_size % 2 == 0):
            raise ValueError(f"blur_kernel_size must be odd or 0, got {self.blur_kernel_size}")
        if not (0.0 <= self.min_area_ratio < self.max_area_ratio <= 1.0):
            raise ValueError(f"area ratios must satisfy 0 <= min < max <= 1 ({self.min_area_ratio}, {self.max_area_ratio})")
        if self.expected_aspect_ratio < 0 or self.expected_aspect_ratio > 1:
            raise ValueError("expected_aspect_ratio is min(w,h)/max(w,h): use 0 (off) or a value in (0, 1]")
        if self.aspect_ratio_tolerance < 0:
            raise ValueError("aspect_ratio_tolerance must be >= 0")
        if self.width_mm <= 0 or self.height_mm <= 0:
            raise ValueError("physical width/height must be > 0")
        if not (0.0 < self.poly_epsilon_ratio < 1.0):
            raise ValueError("poly_epsilon_ratio must be in (0, 1)")
        if not (0.0 <= self.min_edge_ratio < 1.0):
            raise ValueError("min_edge_ratio must be in [0, 1)")
        if self.dilate_kernel_size < 0:
            raise ValueError("dilate_kernel_size must be >= 0")

    @property
    def pose_enabled(self) -> bool:
        return self.focal_length > 0

    def with_camera_intrinsics(
        self, focal_length: float, cx: Optional[float] = None, cy: Optional[float] = None
    ) -> "DetectionConfig":
        return replace(
            self,
            focal_length=float(focal_length),
            cx=self.cx if cx is None else float(cx),
            cy=self.cy if cy is None else float(cy),
        )

    def tuned_for_camera(self) -> "DetectionConfig":
        """
        Live camera frames: the target must fill 10-90 % of the frame and a
        larger blur suppresses sensor noise.
        """
        return replace(self, min_area_ratio=0.1, max_area_ratio=0.9, canny_low=50, canny_high=150, blur_kernel_size=7)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Optional[Mapping[str, Any]] = None) -> "DetectionConfig":
        """
        Build from a mapping (e.g. the `paper:` section of params.yaml).
        A `preset` key selects the starting point; other keys override it.
        Unknown keys are rejected.
        """
        d = dict(d or {})
        base = get_preset(d.pop("preset")) if "preset" in d else cls()
        known = {f.name for f in fields(cls)}
        unknown = set(d) - known
        if unknown:
            raise ValueError(f"unknown DetectionConfig keys: {sorted(unknown)}")
        return replace(base, **d)


def _paper(w: float, h: float, **kw) -> DetectionConfig:
    # detection always compares min/max, so the ratio is orientation independent
    return DetectionConfig(expected_aspect_ratio=min(w, h) / max(w, h), width_mm=w, height_mm=h, **kw)


PRESETS: Dict[str, DetectionConfig] = {
    "A0": _paper(841, 1189),
    "A1": _paper(594, 841),
    "A2": _paper(420, 594),
    "A3": _paper(297, 420),
    "A4": DetectionConfig(),
    "A5": _paper(148, 210),
    "A6": _paper(105, 148),
    "A3 (landscape)": _paper(420, 297),
    "A4 (landscape)": _paper(297, 210),
    "A5 (landscape)": _paper(210, 148),
    "US Letter": _paper(215.9, 279.4),
    "US Legal": _paper(215.9, 355.6),
    "Business Card": _paper(90, 50, aspect_ratio_tolerance=0.2),
    "Credit Card": _paper(85.6, 53.98, aspect_ratio_tolerance=0.15),
    "Square": _paper(100, 100, aspect_ratio_tolerance=0.15),
    "Any Rectangle": DetectionConfig(expected_aspect_ratio=0.0, aspect_ratio_tolerance=1.0),
}


def get_preset(name: str) -> DetectionConfig:
    """Case-insensitive preset lookup; KeyError lists the known names."""
    for k, v in PRESETS.items():
        if k.lower() == str(name).lower():
            return v
    raise KeyError(f"unknown preset {name!r}; known: {', '.join(PRESETS)}")


# -----------------------------
# Anchor / feature pipeline
# -----------------------------

@dataclass(frozen=True)
class MatchingConfig:
    # ORB
    nfeatures: int = 1000
    scale_factor: float = 1.2
    nlevels: int = 8
    edge_threshold: int = 31
    patch_size: int = 31
    fast_threshold: int = 20
    # matching
    ratio: float = 0.75                 # Lowe ratio on Hamming distances
    enforce_uniqueness: bool = False    # one-to-one on the scene side
    min_keypoints: int = 4
    min_matches: int = 10               # ratio-test survivors needed before RANSAC
    # RANSAC + acceptance
    ransac_reproj_px: float = 5.0
    ransac_max_iters: int = 2000
    ransac_seed: Optional[int] = 0
    min_inliers: int = 10
    min_inlier_ratio: float = 0.3
    # quadrilateral plausibility: (top/left) / (ref_w/ref_h)
    min_aspect_distortion: float = 0.3
    max_aspect_distortion: float = 3.0

    def __post_init__(self) -> None:
        if self.nfeatures < 1:
            raise ValueError("nfeatures must be >= 1")
        if not (0.0 < self.ratio <= 1.0):
            raise ValueError("ratio must be in (0, 1]")
        if self.min_keypoints < 4:
            raise ValueError("min_keypoints must be >= 4")
        if self.ransac_reproj_px <= 0:
            raise ValueError("ransac_reproj_px must be > 0")
        if self.ransac_max_iters < 1:
            raise ValueError("ransac_max_iters must be >= 1")
        if self.min_inliers < 4:
            raise ValueError("min_inliers must be >= 4")
        if not (0.0 <= self.min_inlier_ratio <= 1.0):
            raise ValueError("min_inlier_ratio must be in [0, 1]")
        if not (0.0 < self.min_aspect_distortion <= 1.0 <= self.max_aspect_distortion):
            raise ValueError("aspect distortion bounds must satisfy 0 < lo <= 1 <= hi")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Optional[Mapping[str, Any]] = None) -> "MatchingConfig":
        d = dict(d or {})
        known = {f.name for f in fields(cls)}
        unknown = set(d) - known
        if unknown:
            raise ValueError(f"unknown MatchingConfig keys: {sorted(unknown)}")
        return cls(**d)


# -----------------------------
# params.yaml
# -----------------------------

DEFAULT_PARAMS: Dict[str, Any] = {
    "logging": {"level": "INFO", "metrics_file": "logs/metrics.jsonl"},
    "matching": {},
    "paper": {"preset": "A4"},
    "smoothing": {"threshold": 5.0, "smoothing_factor": 0.5},
    "service": {"host": "0.0.0.0", "port": 8000},
}


def load_params(path: str = "config/params.yaml") -> Dict[str, Any]:
    """
    Read params.yaml; sections missing from the file fall back to DEFAULT_PARAMS.
    A missing file yields the defaults.
    """
    P: Dict[str, Any] = {k: dict(v) for k, v in DEFAULT_PARAMS.items()}
    p = Path(path)
    if not p.exists():
        return P
    with p.open("r") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    for k, v in loaded.items():
        if isinstance(v, dict) and isinstance(P.get(k), dict):
            P[k] = {**P[k], **v}
        else:
            P[k] = v
    return P
