"""
Unit tests for result records, correspondences and image buffers
"""

import json

import pytest
import numpy as np
import cv2
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import DecodeError, InvalidInputError
from common.image import ImageBuffer, decode_gray, to_gray_u8
from common.types import AnchorResult, Correspondences, ImageFrame, PaperResult, Status


class TestStatus:
    def test_stable_values(self):
        assert [int(s) for s in Status] == [1, 0, -1, -2, -3]


class TestResults:
    """Immutable result records"""

    def test_failure_records(self):
        for res in (AnchorResult.failure(Status.NOT_FOUND, num_matches=7), PaperResult.failure(Status.DECODE_FAILURE)):
            assert not res.is_valid
            np.testing.assert_array_equal(res.homography, np.eye(3))
            np.testing.assert_array_equal(res.corners, np.zeros((4, 2)))
        assert AnchorResult.failure(Status.NOT_FOUND, num_matches=7).num_matches == 7

    def test_arrays_read_only(self):
        res = AnchorResult.failure(Status.NOT_FOUND)
        with pytest.raises(ValueError):
            res.corners[0, 0] = 1.0

    def test_to_dict_is_json(self):
        """Homography flattens row-major to nine floats"""
        H = np.arange(9, dtype=float).reshape(3, 3)
        res = PaperResult(status=Status.SUCCESS, corners=np.ones((4, 2)), center=[1, 1], homography=H,
                          rotation_vector=[0, 0, 1], translation_vector=[1, 2, 3])
        d = json.loads(json.dumps(res.to_dict()))
        assert d["homography"] == list(range(9))
        assert d["status"] == 1
        assert d["translation_vector"] == [1, 2, 3]
        assert res.has_pose

    def test_wrong_shape(self):
        with pytest.raises(ValueError):
            AnchorResult(status=Status.SUCCESS, corners=np.zeros((3, 2)), center=np.zeros(2))


class TestCorrespondences:
    def test_from_arrays(self):
        c = Correspondences.from_arrays([0, 1], [2, 3], [4, 5], [6, 7])
        np.testing.assert_array_equal(c.ref, [[0, 2], [1, 3]])
        np.testing.assert_array_equal(c.scene, [[4, 6], [5, 7]])

    def test_mismatch(self):
        with pytest.raises(ValueError):
            Correspondences(np.zeros((3, 2)), np.zeros((4, 2)))
        with pytest.raises(ValueError):
            Correspondences.from_arrays([0], [0, 1], [0], [0])


class TestImageBuffer:
    """Raw pixel buffers and grayscale conversion"""

    def test_rgb_bytes(self):
        """Pure red in RGB order converts with the red weight"""
        rgb = np.zeros((2, 3, 3), np.uint8)
        rgb[..., 0] = 255
        buf = ImageBuffer.from_bytes(rgb.tobytes(), 3, 2, 3, color_order="RGB")
        expected = cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)
        np.testing.assert_array_equal(buf.to_gray(), expected)
        assert (buf.width, buf.height, buf.channels) == (3, 2, 3)

    def test_gray_passthrough(self):
        g = np.arange(12, dtype=np.uint8).reshape(3, 4)
        np.testing.assert_array_equal(to_gray_u8(g), g)

    @pytest.mark.parametrize("args", [
        (b"", 2, 2, 1),
        (b"\x00" * 4, 0, 2, 1),
        (b"\x00" * 4, 2, 2, 2),
        (b"\x00" * 3, 2, 2, 1),
    ])
    def test_invalid_buffers(self, args):
        with pytest.raises(InvalidInputError):
            ImageBuffer.from_bytes(*args)

    def test_unknown_color_order(self):
        with pytest.raises(InvalidInputError):
            ImageBuffer(np.zeros((2, 2, 3), np.uint8), color_order="HSV")

    def test_decode(self):
        ok, png = cv2.imencode(".png", np.full((5, 7), 9, np.uint8))
        assert ok
        assert decode_gray(png.tobytes()).shape == (5, 7)
        with pytest.raises(DecodeError) as e:
            decode_gray(b"xx", which="scene")
        assert e.value.which == "scene"
        with pytest.raises(InvalidInputError):
            decode_gray(b"")


class TestImageFrame:
    def test_size_mismatch(self):
        with pytest.raises(ValueError):
            ImageFrame(ts="t", index=0, width=5, height=2, frame=np.zeros((2, 4), np.uint8))
