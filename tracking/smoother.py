from __future__ import annotations

import dataclasses
import math
from typing import Optional, TypeVar, Union

import numpy as np

from common.geometry import centroid
from common.types import AnchorResult, PaperResult
from common.utils import clamp

Result = TypeVar("Result", AnchorResult, PaperResult)

# normalized displacement where the weight curve switches from damping to following
KNEE = 1.5
# span (in thresholds) past the knee over which the weight falls
FALLOFF = 3.5
MAX_WEIGHT = 0.9
MIN_WEIGHT = 0.3
MAX_REDUCTION = 0.6


def adaptive_smoothing_factor(displacement: float, threshold: float, smoothing_factor: float) -> float:
    """
    Weight given to the previous corners for a mean displacement (pixels).

    Up to 1.5x threshold the weight rises from the base factor toward 0.9 as
    the displacement shrinks, so small real motions are damped. Beyond that it
    falls from the base factor toward 0.3 (never below min(0.3, base)) so large
    motions are followed quickly. Never exceeds the base factor past the knee.
    """
    n = displacement / threshold
    if n <= KNEE:
        return smoothing_factor + (MAX_WEIGHT - smoothing_factor) * (1.0 - n / KNEE)
    excess = (n - KNEE) / FALLOFF if math.isfinite(n) else MAX_REDUCTION
    w = smoothing_factor * (1.0 - clamp(excess, 0.0, MAX_REDUCTION))
    return clamp(w, min(MIN_WEIGHT, smoothing_factor), smoothing_factor)


def mean_corner_displacement(new: np.ndarray, old: np.ndarray) -> float:
    """Mean per-corner Euclidean distance; inf when the corner sets do not line up."""
    a = np.asarray(new, dtype=np.float64).reshape(-1, 2)
    b = np.asarray(old, dtype=np.float64).reshape(-1, 2)
    if a.shape != b.shape or a.size == 0:
        return math.inf
    return float(np.linalg.norm(a - b, axis=1).mean())


class CornerSmoother:
    """
    Temporal jitter filter for one stream of detections (anchor or paper).

    - invalid input: state is dropped, the input is returned as-is
    - first valid input: stored and returned as-is
    - mean displacement below `threshold`: the previous smoothed result is returned
    - otherwise corners are blended (1 - w) * new + w * old with an adaptive w,
      the center is recomputed and every other field comes from the new result

    Not thread-safe; use one instance per stream.
    """

    def __init__(self, threshold: float = 5.0, smoothing_factor: float = 0.5) -> None:
        if not threshold > 0:
            raise ValueError(f"threshold must be > 0, got {threshold}")
        if not 0.0 < smoothing_factor < 1.0:
            raise ValueError(f"smoothing_factor must be in (0, 1), got {smoothing_factor}")
        self.threshold = float(threshold)
        self.smoothing_factor = float(smoothing_factor)
        self._last: Optional[Union[AnchorResult, PaperResult]] = None

    @property
    def is_tracking(self) -> bool:
        return self._last is not None

    def reset(self) -> None:
        self._last = None

    def smooth(self, result: Result) -> Result:
        if not result.is_valid:
            self._last = None
            return result

        prev = self._last
        if prev is None:
            self._last = result
            return result

        d = mean_corner_displacement(result.corners, prev.corners)
        if d < self.threshold:
            return prev

        if not math.isfinite(d):
            # nothing to blend against
            self._last = result
            return result

        w = adaptive_smoothing_factor(d, self.threshold, self.smoothing_factor)
        corners = (1.0 - w) * np.asarray(result.corners) + w * np.asarray(prev.corners)
        out = dataclasses.replace(result, corners=corners, center=centroid(corners))
        self._last = out
        return out
