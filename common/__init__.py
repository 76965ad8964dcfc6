"""
Common: shared types, config, geometry and logging for quadloc.

- types:    Status codes, Correspondences, AnchorResult / PaperResult, ImageFrame
- config:   DetectionConfig (+ named presets), MatchingConfig, YAML params
- image:    ImageBuffer + grayscale conversion / decoding
- quad:     quadrilateral validation (convexity, aspect, corner ordering)
- geometry: homography application and small planar helpers
"""

__version__ = "1.0.0"
