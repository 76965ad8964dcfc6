"""
Anchor: locate a reference image in a scene via ORB matches and RANSAC.

- features: ORB extraction, Hamming KNN + ratio test
- ransac:   normalized DLT + fixed-budget RANSAC with an injectable RNG
- locate:   acceptance policy, corner/rotation/scale derivation, facades
"""

from anchor.locate import locate_anchor, locate_anchor_encoded, locate_from_arrays, locate_from_points

__all__ = ["locate_anchor", "locate_anchor_encoded", "locate_from_arrays", "locate_from_points"]
