"""
Tests for the kz2 command line program
"""

import cv2
import numpy as np
import pytest

import experiment
from conftest import SHIFT
from kz_config import ConfigManager
from kz_errors import ConfigurationError
from kz_io import OCCLUSION_BGR


@pytest.fixture
def pair_files(shifted_pair, tmp_path):
    left_file = tmp_path / 'left.png'
    right_file = tmp_path / 'right.png'
    cv2.imwrite(str(left_file), shifted_pair[0])
    cv2.imwrite(str(right_file), shifted_pair[1])
    return str(left_file), str(right_file)


WEIGHTS = ['-k', '10', '--lambda1', '6', '--lambda2', '2', '--data-cost', 'L1']


class TestMain:
    """Test suite for experiment.main."""

    def test_disparity_maps_written(self, pair_files, tmp_path):
        float_file = tmp_path / 'out.tif'
        scaled_file = tmp_path / 'scaled.ppm'
        status = experiment.main([*pair_files, '0', '4', str(float_file), *WEIGHTS,
                                  '-o', str(scaled_file), '--occlusion-color', '--seed', '1'])
        assert status == 0

        disp = cv2.imread(str(float_file), cv2.IMREAD_UNCHANGED)
        assert disp.dtype == np.float32
        assert np.all(disp[:, :-SHIFT] == SHIFT)
        assert np.all(np.isnan(disp[:, -SHIFT:]))

        scaled = cv2.imread(str(scaled_file), cv2.IMREAD_UNCHANGED)
        assert tuple(scaled[0, -1]) == OCCLUSION_BGR

    def test_range_from_config_file(self, pair_files, tmp_path):
        config_file = tmp_path / 'kz2.yaml'
        float_file = tmp_path / 'out.tif'
        config_file.write_text(
            "kz2:\n  K: 10\n  lambda1: 6\n  lambda2: 2\n  data_cost: L1\n"
            "disparity:\n  min: 0\n  max: 4\n"
            f"output:\n  float_map: {float_file}\n")
        assert experiment.main([*pair_files, '-c', str(config_file)]) == 0
        assert float_file.exists()

    def test_missing_image(self, pair_files, tmp_path):
        missing = str(tmp_path / 'missing.png')
        assert experiment.main([pair_files[0], missing, '0', '4', *WEIGHTS]) == 1

    def test_invalid_weights(self, pair_files):
        args = [*pair_files, '0', '4', '-k', '10', '--lambda1', '1', '--lambda2', '3']
        assert experiment.main(args) == 1

    def test_missing_range(self, pair_files):
        assert experiment.main([*pair_files, *WEIGHTS]) == 1


class TestArguments:
    """Test suite for command line overrides."""

    def test_overrides(self):
        args = experiment.build_parser().parse_args(
            ['l.png', 'r.png', '-3', '5', 'd.tif', '-k', '4', '--lambda', '2',
             '-t', '5', '-i', '7', '-r', '-v'])
        config = ConfigManager()
        experiment.apply_arguments(config, args)
        assert config.get_disparity_range() == (-3, 5)
        assert config.get('kz2.K') == 4
        assert config.get('kz2.lambda') == 2
        assert config.get('kz2.i_threshold2') == 5
        assert config.get('kz2.iter_max') == 7
        assert config.get('kz2.randomize_every_iteration') is True
        assert config.get('output.float_map') == 'd.tif'
        assert config.get('logging.level') == 'DEBUG'

    def test_unset_options_keep_config(self):
        args = experiment.build_parser().parse_args(['l.png', 'r.png'])
        config = ConfigManager()
        experiment.apply_arguments(config, args)
        assert config.config == ConfigManager().config

    def test_compute_disparity_needs_range(self, shifted_pair):
        with pytest.raises(ConfigurationError):
            experiment.compute_disparity(*shifted_pair, ConfigManager())
