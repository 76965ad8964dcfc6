"""
Paper: find a sheet/card quadrilateral in a single image by contour analysis.

- preprocess: blur, Canny, dilation, external contours
- detect:     per-contour filters + scoring, canonical homography, facades
- pose:       optional solvePnP against the known physical size
"""

from paper.detect import detect_paper, detect_paper_encoded

__all__ = ["detect_paper", "detect_paper_encoded"]
