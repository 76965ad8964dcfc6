"""
Unit tests for temporal corner smoothing (tracking.smoother)
"""

import math

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import AnchorResult, PaperResult, Status
from tracking.smoother import CornerSmoother, adaptive_smoothing_factor, mean_corner_displacement
from tests.synthetic import axis_rect


BASE = axis_rect(100, 100, 200, 280)


def paper(corners, area=1000.0, **kw):
    c = np.asarray(corners, dtype=float)
    return PaperResult(status=Status.SUCCESS, corners=c, center=c.mean(axis=0), area=area, **kw)


class TestAdaptiveFactor:
    """Displacement -> weight on the previous corners"""

    def test_at_threshold(self):
        """n = 1 gives sf + (0.9 - sf) / 3"""
        assert adaptive_smoothing_factor(5.0, 5.0, 0.5) == pytest.approx(0.5 + 0.4 / 3)

    def test_knee(self):
        """n = 1.5 is exactly the base factor"""
        assert adaptive_smoothing_factor(7.5, 5.0, 0.5) == pytest.approx(0.5)

    def test_large_motion_floor(self):
        """Far past the knee the weight bottoms out at 0.3"""
        assert adaptive_smoothing_factor(1000.0, 5.0, 0.5) == pytest.approx(0.3)
        assert adaptive_smoothing_factor(math.inf, 5.0, 0.5) == pytest.approx(0.3)

    def test_never_above_base_past_knee(self):
        for d in np.linspace(7.6, 200, 50):
            assert adaptive_smoothing_factor(d, 5.0, 0.6) <= 0.6

    def test_small_base_factor(self):
        """A base below 0.3 is never raised past the knee"""
        assert adaptive_smoothing_factor(100.0, 5.0, 0.2) == pytest.approx(0.2)

    def test_monotone_decreasing(self):
        ws = [adaptive_smoothing_factor(d, 5.0, 0.5) for d in np.linspace(5, 60, 40)]
        assert all(a >= b - 1e-12 for a, b in zip(ws, ws[1:]))


class TestDisplacement:
    def test_mean_distance(self):
        assert mean_corner_displacement(BASE + [3, 4], BASE) == pytest.approx(5.0)

    def test_mismatched_counts(self):
        assert mean_corner_displacement(BASE[:3], BASE) == math.inf


class TestCornerSmoother:
    """State machine"""

    def test_first_valid_passes_through(self):
        s = CornerSmoother()
        r = paper(BASE)
        assert s.smooth(r) is r
        assert s.is_tracking

    def test_identical_twice_unchanged(self):
        """Zero displacement returns the stored result both times"""
        s = CornerSmoother()
        r = paper(BASE)
        assert s.smooth(r) is r
        assert s.smooth(r) is r

    def test_jitter_below_threshold_ignored(self):
        """Sub-threshold motion returns the previous result object"""
        s = CornerSmoother(threshold=5.0)
        first = paper(BASE)
        s.smooth(first)
        out = s.smooth(paper(BASE + [2.0, 1.0], area=2000.0))
        assert out is first

    def test_blend_strictly_between(self):
        """2x threshold: every corner lands strictly between old and new"""
        s = CornerSmoother(threshold=5.0, smoothing_factor=0.5)
        s.smooth(paper(BASE))
        new = BASE + [10.0, 0.0]
        out = s.smooth(paper(new))
        w = adaptive_smoothing_factor(10.0, 5.0, 0.5)
        assert 0.0 < w < 1.0
        np.testing.assert_allclose(out.corners, (1 - w) * new + w * BASE)
        assert np.all(out.corners[:, 0] > BASE[:, 0])
        assert np.all(out.corners[:, 0] < new[:, 0])
        np.testing.assert_allclose(out.corners[:, 1], BASE[:, 1])

    def test_other_fields_from_new_result(self):
        """Center recomputed, everything else copied from the new detection"""
        s = CornerSmoother(threshold=5.0)
        s.smooth(paper(BASE, area=1.0))
        H = np.array([[2.0, 0, 0], [0, 2.0, 0], [0, 0, 1.0]])
        new = paper(BASE + 20.0, area=7.0, homography=H, rotation_vector=[0.1, 0.2, 0.3], translation_vector=[1, 2, 3])
        out = s.smooth(new)
        assert out.area == 7.0
        np.testing.assert_array_equal(out.homography, H)
        np.testing.assert_array_equal(out.rotation_vector, [0.1, 0.2, 0.3])
        np.testing.assert_allclose(out.center, out.corners.mean(axis=0))
        assert out.status == Status.SUCCESS

    def test_state_follows_smoothed_corners(self):
        """The next displacement is measured from the smoothed corners"""
        s = CornerSmoother(threshold=5.0)
        s.smooth(paper(BASE))
        out = s.smooth(paper(BASE + [10.0, 0.0]))
        # a repeat of the smoothed corners is a zero move from the stored state
        assert s.smooth(paper(out.corners)) is out

    def test_invalid_resets(self):
        """After an invalid frame the next valid one is taken verbatim"""
        s = CornerSmoother(threshold=5.0)
        s.smooth(paper(BASE))
        bad = PaperResult.failure(Status.NOT_FOUND)
        assert s.smooth(bad) is bad
        assert not s.is_tracking
        nxt = paper(BASE + [30.0, 0.0])
        assert s.smooth(nxt) is nxt

    def test_invalid_while_empty(self):
        s = CornerSmoother()
        bad = PaperResult.failure(Status.INVALID_INPUT)
        assert s.smooth(bad) is bad
        assert not s.is_tracking

    def test_explicit_reset(self):
        s = CornerSmoother()
        s.smooth(paper(BASE))
        s.reset()
        nxt = paper(BASE + 50.0)
        assert s.smooth(nxt) is nxt

    def test_anchor_results(self):
        """Works on anchor results too"""
        s = CornerSmoother(threshold=5.0)
        a = AnchorResult(status=Status.SUCCESS, corners=BASE, center=BASE.mean(axis=0), num_inliers=40)
        s.smooth(a)
        b = AnchorResult(status=Status.SUCCESS, corners=BASE + 40.0, center=BASE.mean(axis=0) + 40.0, num_inliers=55)
        out = s.smooth(b)
        assert isinstance(out, AnchorResult)
        assert out.num_inliers == 55
        assert np.all(out.corners > BASE) and np.all(out.corners < BASE + 40.0)

    @pytest.mark.parametrize("threshold,factor", [(0.0, 0.5), (-1.0, 0.5), (5.0, 0.0), (5.0, 1.0)])
    def test_bad_parameters(self, threshold, factor):
        with pytest.raises(ValueError):
            CornerSmoother(threshold=threshold, smoothing_factor=factor)
