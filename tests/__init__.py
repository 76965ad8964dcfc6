"""
quadloc Test Suite

Tests for planar reference localization (anchor homography + paper detection).

Structure:
- unit/: Unit tests for individual components
- integration/: HTTP service and stream CLI end to end
- synthetic.py: generated test images and correspondences
"""
