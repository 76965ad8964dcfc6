"""
Unit tests for planar pose recovery (paper.pose)
"""

import numpy as np
import cv2
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.config import DetectionConfig
from common.types import Status
from paper.detect import detect_paper
from paper.pose import camera_matrix, estimate_pose
from tests.synthetic import paper_scene


W_MM, H_MM = 210.0, 297.0
OBJ = np.array([[0, 0, 0], [W_MM, 0, 0], [W_MM, H_MM, 0], [0, H_MM, 0]], dtype=np.float64)


def _project(rvec, tvec, f=800.0, size=(640, 480)):
    K = camera_matrix(f, 0, 0, size)
    pts, _ = cv2.projectPoints(OBJ, np.asarray(rvec, float), np.asarray(tvec, float), K, np.zeros(4))
    return pts.reshape(4, 2)


class TestCameraMatrix:
    """Intrinsics defaults"""

    def test_principal_point_defaults_to_centre(self):
        K = camera_matrix(700.0, 0.0, -1.0, (640, 480))
        assert K[0, 2] == 320.0 and K[1, 2] == 240.0
        assert K[0, 0] == K[1, 1] == 700.0

    def test_explicit_principal_point(self):
        K = camera_matrix(700.0, 300.0, 250.0, (640, 480))
        assert K[0, 2] == 300.0 and K[1, 2] == 250.0


class TestEstimatePose:
    """solvePnP on a known rectangle"""

    def test_disabled_without_focal_length(self):
        corners = _project([0, 0, 0], [-105, -148.5, 1000])
        assert estimate_pose(corners, W_MM, H_MM, focal_length=0.0, image_size=(640, 480)) is None

    def test_recovers_fronto_parallel_pose(self):
        """Translation comes back in millimetres"""
        tvec = np.array([-105.0, -148.5, 1000.0])
        corners = _project([0, 0, 0], tvec)
        rvec, t = estimate_pose(corners, W_MM, H_MM, focal_length=800.0, image_size=(640, 480))
        np.testing.assert_allclose(t, tvec, atol=1.0)
        np.testing.assert_allclose(rvec, np.zeros(3), atol=1e-3)

    def test_recovers_tilted_pose(self):
        rvec_true = np.array([0.25, -0.15, 0.1])
        tvec_true = np.array([-80.0, -120.0, 900.0])
        corners = _project(rvec_true, tvec_true)
        rvec, t = estimate_pose(corners, W_MM, H_MM, focal_length=800.0, image_size=(640, 480))
        np.testing.assert_allclose(rvec, rvec_true, atol=1e-3)
        np.testing.assert_allclose(t, tvec_true, atol=1.0)


class TestPoseInDetection:
    """Pose is attached to paper results when intrinsics are set"""

    def test_pose_attached(self):
        quad = np.array([[220, 80], [388, 80], [388, 317.6], [220, 317.6]])
        cfg = DetectionConfig().with_camera_intrinsics(800.0)
        res = detect_paper(paper_scene(quad), cfg)
        assert res.status == Status.SUCCESS
        assert res.has_pose
        # sheet in front of the camera, roughly 800 * 210 / 168 mm away
        assert 900 < res.translation_vector[2] < 1100

    def test_no_pose_without_intrinsics(self):
        quad = np.array([[220, 80], [388, 80], [388, 317.6], [220, 317.6]])
        res = detect_paper(paper_scene(quad))
        assert res.is_valid
        assert res.rotation_vector is None and res.translation_vector is None
