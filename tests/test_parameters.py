"""
Tests for parameter validation and automatic selection
"""

import numpy as np
import pytest
from hypothesis import given, strategies as st

from kz_errors import ConfigurationError
from kz_match import Match
from kz_parameters import DataCost, Parameters, best_denominator, fix_parameters


class TestParameters:
    """Test suite for Parameters."""

    def test_defaults_are_valid(self):
        params = Parameters()
        assert params.data_cost == DataCost.L2
        assert params.denominator == 1

    def test_data_cost_from_string(self):
        assert Parameters(data_cost='l1').data_cost == DataCost.L1

    @pytest.mark.parametrize("kwargs", [
        {'lambda1': 1, 'lambda2': 2},
        {'denominator': 0},
        {'K': -1},
        {'iter_max': 0},
        {'i_threshold2': -1},
        {'data_cost': 'L3'},
        {'K': 2.5},
        {'lambda1': 'a'},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            Parameters(**kwargs)

    @given(lambda1=st.integers(0, 100), lambda2=st.integers(0, 100))
    def test_submodularity_rejection(self, lambda1, lambda2):
        if lambda2 > lambda1:
            with pytest.raises(ConfigurationError):
                Parameters(lambda1=lambda1, lambda2=lambda2)
        else:
            params = Parameters(lambda1=lambda1, lambda2=lambda2)
            assert params.lambda2 <= params.lambda1

    def test_frozen(self):
        params = Parameters()
        with pytest.raises(AttributeError):
            params.K = 3

    def test_rejected_before_any_graph(self):
        image = np.zeros((2, 3), np.uint8)
        match = Match(image, image)
        match.set_disp_range(0, 1)
        with pytest.raises(ConfigurationError):
            match.set_parameters(Parameters(lambda1=1, lambda2=5))
        assert match.params is None


class TestAutomaticParameters:
    """Test suite for the automatic K / lambda / denominator choice."""

    def test_best_denominator(self):
        assert best_denominator(3, 9, 3) == 1
        assert best_denominator(1, 0.6, 0.2) == 5
        assert best_denominator(0, 0, 0) == 1

    def test_fix_parameters_explicit(self):
        params = fix_parameters(None, data_cost='L1', K=5, lambda1=3, lambda2=1)
        assert (params.K, params.lambda1, params.lambda2, params.denominator) == (5, 3, 1, 1)

    def test_fix_parameters_default_lambdas(self):
        params = fix_parameters(None, K=10)
        # lambda = 2, lambda1 = 6, lambda2 = 2
        assert (params.K, params.lambda1, params.lambda2) == (10, 6, 2)

    def test_fix_parameters_scales_by_denominator(self):
        params = fix_parameters(None, K=1, lambda1=0.6, lambda2=0.2)
        assert params.denominator == 5
        assert (params.K, params.lambda1, params.lambda2) == (5, 3, 1)

    def test_fix_parameters_negative(self):
        with pytest.raises(ConfigurationError):
            fix_parameters(None, K=-1)

    @pytest.mark.parametrize("data_cost, expected", [(DataCost.L1, 10.0), (DataCost.L2, 100.0)])
    def test_get_k(self, data_cost, expected):
        match = Match(np.full((3, 8), 100, np.uint8), np.full((3, 8), 110, np.uint8))
        match.set_disp_range(0, 3)
        assert match.get_k(data_cost) == pytest.approx(expected)

    def test_auto_k_used(self):
        match = Match(np.full((3, 8), 100, np.uint8), np.full((3, 8), 110, np.uint8))
        match.set_disp_range(0, 3)
        params = fix_parameters(match, data_cost=DataCost.L1)
        assert params.K == 10 * params.denominator

    def test_get_k_without_samples(self):
        match = Match(np.zeros((2, 3), np.uint8), np.zeros((2, 1), np.uint8))
        match.set_disp_range(-2, 0)
        with pytest.raises(ConfigurationError):
            match.get_k()

    def test_get_k_needs_range(self):
        match = Match(np.zeros((2, 3), np.uint8), np.zeros((2, 3), np.uint8))
        with pytest.raises(ConfigurationError):
            match.get_k()

    def test_get_k_skips_border_columns(self):
        # columns 5.. cannot reach the right image for every disparity of [0, 7]
        left = np.full((3, 12), 100, np.uint8)
        left[:, 5:] = 0
        match = Match(left, np.full((3, 12), 110, np.uint8))
        match.set_disp_range(0, 7)
        assert match.get_k(DataCost.L1) == pytest.approx(10.0)

    def test_get_k_identical_images(self, identical_pair):
        match = Match(*identical_pair)
        match.set_disp_range(0, 0)
        with pytest.raises(ConfigurationError, match='K is 0'):
            match.get_k()
        with pytest.raises(ConfigurationError):
            fix_parameters(match)

    def test_identical_images_with_explicit_k(self, identical_pair):
        match = Match(*identical_pair)
        match.set_disp_range(0, 0)
        match.set_parameters(fix_parameters(match, K=5))
        match.kz2()
        assert np.all(match.x_left == 0)
