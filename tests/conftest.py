"""
Pytest configuration and fixtures for the KZ2 matcher tests.
"""

import numpy as np
import pytest

from kz_match import Match, OCCLUDED
from kz_parameters import DataCost, Parameters


SHIFT = 2


@pytest.fixture
def identical_pair():
    """Two identical 4x4 textured grayscale images."""
    rng = np.random.default_rng(7)
    image = rng.integers(0, 256, size=(4, 4)).astype(np.uint8)
    return image, image.copy()


@pytest.fixture
def shifted_pair():
    """Right image = left image moved 2 pixels to the right (disparity +2)."""
    rng = np.random.default_rng(0)
    left = rng.integers(0, 256, size=(6, 12)).astype(np.uint8)
    right = np.empty_like(left)
    right[:, SHIFT:] = left[:, :-SHIFT]
    right[:, :SHIFT] = rng.integers(0, 256, size=(6, SHIFT))
    return left, right


@pytest.fixture
def shifted_color_pair():
    """Color version of the shifted pair."""
    rng = np.random.default_rng(3)
    left = rng.integers(0, 256, size=(5, 10, 3)).astype(np.uint8)
    right = np.empty_like(left)
    right[:, SHIFT:] = left[:, :-SHIFT]
    right[:, :SHIFT] = rng.integers(0, 256, size=(5, SHIFT, 3))
    return left, right


@pytest.fixture
def shift_params():
    """Parameters with a small occlusion penalty relative to mismatches."""
    return Parameters(data_cost=DataCost.L1, denominator=1, i_threshold2=8,
                      lambda1=6, lambda2=2, K=10, iter_max=5)


@pytest.fixture
def make_match():
    """Factory building a configured matcher."""
    def _make(left, right, disp_min, disp_max, params, **kwargs):
        match = Match(left, right, **kwargs)
        match.set_disp_range(disp_min, disp_max)
        match.set_parameters(params)
        return match
    return _make


def assert_consistent(match):
    """x_left and x_right describe the same set of matches."""
    x_left, x_right = match.x_left, match.x_right
    active = 0
    for (y, x), d in np.ndenumerate(x_left):
        if d == OCCLUDED:
            continue
        active += 1
        assert match.disp_min <= d <= match.disp_max
        assert x_right[y, x + d] == -d
    assert np.count_nonzero(x_right != OCCLUDED) == active
