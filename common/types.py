from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np


IsoTime = str


class Status(IntEnum):
    """
    Outcome of a pipeline call. Values are stable and shared by the library,
    the HTTP service and the JSONL metrics.
    """
    SUCCESS = 1
    NOT_FOUND = 0
    INVALID_INPUT = -1
    DECODE_FAILURE = -2
    SCENE_DECODE_FAILURE = -3


def _frozen_array(x, shape: Tuple[int, ...]) -> np.ndarray:
    a = np.array(x, dtype=np.float64).reshape(shape)
    a.setflags(write=False)
    return a


def _optional_vec3(x) -> Optional[np.ndarray]:
    return None if x is None else _frozen_array(x, (3,))


@dataclass(slots=True)
class Correspondences:
    """
    Matched point pairs: ref[i] (reference/anchor space) <-> scene[i].

    Attributes:
        ref:   (N,2) float64
        scene: (N,2) float64
    """
    ref: np.ndarray
    scene: np.ndarray

    def __post_init__(self) -> None:
        self.ref = np.asarray(self.ref, dtype=np.float64).reshape(-1, 2)
        self.scene = np.asarray(self.scene, dtype=np.float64).reshape(-1, 2)
        if self.ref.shape != self.scene.shape:
            raise ValueError(f"ref/scene length mismatch: {len(self.ref)} vs {len(self.scene)}")

    def __len__(self) -> int:
        return int(self.ref.shape[0])

    @classmethod
    def from_arrays(
        cls,
        ref_x: Sequence[float],
        ref_y: Sequence[float],
        scene_x: Sequence[float],
        scene_y: Sequence[float],
    ) -> "Correspondences":
        """Four parallel coordinate arrays (x0, y0, x1, y1)."""
        lens = {len(ref_x), len(ref_y), len(scene_x), len(scene_y)}
        if len(lens) != 1:
            raise ValueError("coordinate arrays must have equal length")
        ref = np.column_stack([np.asarray(ref_x, float), np.asarray(ref_y, float)])
        scene = np.column_stack([np.asarray(scene_x, float), np.asarray(scene_y, float)])
        return cls(ref, scene)


@dataclass(frozen=True, slots=True)
class AnchorResult:
    """
    Anchor (reference image) located in a scene via feature correspondences.

    Attributes:
        status: Status code.
        corners: (4,2) anchor corners mapped into the scene, in the order
            (0,0), (w,0), (w,h), (0,h) of the anchor, i.e. clockwise from its top-left.
        center: mean of the corners.
        rotation: angle of the top edge (radians, clockwise in image coordinates).
        scale: mean of top/anchor_width and left/anchor_height.
        homography: 3x3 anchor -> scene.
        num_matches: ratio-test survivors (or supplied correspondences).
        num_inliers: RANSAC inliers of the accepted model.
        rmse_px: inlier reprojection RMSE.
    """
    status: Status
    corners: np.ndarray = field(repr=False)
    center: np.ndarray
    rotation: float = 0.0
    scale: float = 0.0
    homography: np.ndarray = field(default_factory=lambda: np.eye(3), repr=False)
    num_matches: int = 0
    num_inliers: int = 0
    rmse_px: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", Status(self.status))
        object.__setattr__(self, "corners", _frozen_array(self.corners, (4, 2)))
        object.__setattr__(self, "center", _frozen_array(self.center, (2,)))
        object.__setattr__(self, "homography", _frozen_array(self.homography, (3, 3)))

    @classmethod
    def failure(cls, status: Status, num_matches: int = 0, num_inliers: int = 0) -> "AnchorResult":
        return cls(
            status=status,
            corners=np.zeros((4, 2)),
            center=np.zeros(2),
            homography=np.eye(3),
            num_matches=int(num_matches),
            num_inliers=int(num_inliers),
        )

    @property
    def is_valid(self) -> bool:
        return self.status == Status.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": int(self.status),
            "corners": self.corners.tolist(),
            "center": self.center.tolist(),
            "rotation": float(self.rotation),
            "scale": float(self.scale),
            "homography": self.homography.ravel().tolist(),
            "num_matches": int(self.num_matches),
            "num_inliers": int(self.num_inliers),
            "rmse_px": float(self.rmse_px),
        }


@dataclass(frozen=True, slots=True)
class PaperResult:
    """
    Paper / document quadrilateral found by contour analysis.

    Attributes:
        status: Status code.
        corners: (4,2) clockwise from top-left.
        center: mean of the corners.
        homography: 3x3 canonical rectangle (physical units) -> image.
        area: contour area (px^2).
        perimeter: sum of the quad's edge lengths (px).
        aspect_ratio: min(w,h)/max(w,h), always <= 1.
        rotation_vector, translation_vector: Rodrigues pose, None when not solved.
    """
    status: Status
    corners: np.ndarray = field(repr=False)
    center: np.ndarray
    homography: np.ndarray = field(default_factory=lambda: np.eye(3), repr=False)
    area: float = 0.0
    perimeter: float = 0.0
    aspect_ratio: float = 0.0
    rotation_vector: Optional[np.ndarray] = None
    translation_vector: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", Status(self.status))
        object.__setattr__(self, "corners", _frozen_array(self.corners, (4, 2)))
        object.__setattr__(self, "center", _frozen_array(self.center, (2,)))
        object.__setattr__(self, "homography", _frozen_array(self.homography, (3, 3)))
        object.__setattr__(self, "rotation_vector", _optional_vec3(self.rotation_vector))
        object.__setattr__(self, "translation_vector", _optional_vec3(self.translation_vector))

    @classmethod
    def failure(cls, status: Status) -> "PaperResult":
        return cls(status=status, corners=np.zeros((4, 2)), center=np.zeros(2), homography=np.eye(3))

    @property
    def is_valid(self) -> bool:
        return self.status == Status.SUCCESS

    @property
    def has_pose(self) -> bool:
        return self.rotation_vector is not None and self.translation_vector is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": int(self.status),
            "corners": self.corners.tolist(),
            "center": self.center.tolist(),
            "homography": self.homography.ravel().tolist(),
            "area": float(self.area),
            "perimeter": float(self.perimeter),
            "aspect_ratio": float(self.aspect_ratio),
            "rotation_vector": None if self.rotation_vector is None else self.rotation_vector.tolist(),
            "translation_vector": None if self.translation_vector is None else self.translation_vector.tolist(),
        }


@dataclass(slots=True)
class ImageFrame:
    """
    One frame of a detection stream.

    Attributes:
        ts: ISO-8601 (UTC) timestamp string.
        index: position in the stream (0-based).
        width, height: image dimensions in pixels.
        frame: np.ndarray (H,W) or (H,W,3) BGR, dtype uint8.
        source: where the frame came from (file path, video path).
    """
    ts: IsoTime
    index: int
    width: int
    height: int
    frame: np.ndarray
    source: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.frame, np.ndarray):
            raise TypeError("frame must be a numpy ndarray")
        if self.frame.ndim not in (2, 3):
            raise ValueError("frame must be 2D (gray) or 3D (BGR)")
        if self.frame.shape[0] != self.height or self.frame.shape[1] != self.width:
            raise ValueError("width/height do not match frame shape")
        if self.frame.dtype != np.uint8:
            self.frame = self.frame.astype(np.uint8, copy=False)

