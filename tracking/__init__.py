"""
Tracking: per-stream corner smoothing and the frame-by-frame CLI.
"""

from tracking.smoother import CornerSmoother, adaptive_smoothing_factor

__all__ = ["CornerSmoother", "adaptive_smoothing_factor"]
