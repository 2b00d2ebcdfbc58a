"""
Configuration Management

Built-in defaults, optionally overridden by a YAML file.
"""

import copy
import logging
from typing import Any, Dict, Optional, Tuple

import yaml

from kz_errors import ConfigurationError
from kz_parameters import DataCost

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'kz2': {
        'data_cost': 'L2',
        'denominator': None,   # None: chosen automatically in 1..16
        'i_threshold2': 8,
        'K': None,             # None: estimated from the data term
        'lambda': None,        # None: K / 5
        'lambda1': None,       # None: 3 * lambda
        'lambda2': None,       # None: lambda
        'iter_max': 4,
        'randomize_every_iteration': False,
        'seed': None,
        'check_energy': False,
    },
    'disparity': {
        'min': None,
        'max': None,
    },
    'output': {
        'float_map': None,
        'scaled_map': None,
        'occlusion_color': False,
    },
    'logging': {
        'level': 'INFO',
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class ConfigManager:
    """Manages configuration parameters of the matcher."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to a YAML configuration file. If None, uses the defaults.
        """
        self.config_path = config_path
        self.config = copy.deepcopy(DEFAULT_CONFIG)
        if config_path is not None:
            _merge(self.config, self._load_config())
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as file:
                config = yaml.safe_load(file)
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}")
        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {self.config_path}")
        logger.debug("loaded configuration from %s", self.config_path)
        return config

    def _validate_config(self) -> None:
        """Validate configuration parameters for consistency."""
        kz2 = self.config.get('kz2', {})
        DataCost.parse(kz2.get('data_cost', 'L2'))

        for key in ('K', 'lambda', 'lambda1', 'lambda2'):
            value = kz2.get(key)
            if value is not None and (not isinstance(value, (int, float)) or value < 0):
                raise ConfigurationError(f"kz2.{key} must be a non-negative number")

        lambda1, lambda2 = kz2.get('lambda1'), kz2.get('lambda2')
        if lambda1 is not None and lambda2 is not None and lambda2 > lambda1:
            raise ConfigurationError("kz2.lambda2 must not exceed kz2.lambda1")

        denominator = kz2.get('denominator')
        if denominator is not None and (not isinstance(denominator, int) or denominator <= 0):
            raise ConfigurationError("kz2.denominator must be a positive integer")

        iter_max = kz2.get('iter_max', 4)
        if not isinstance(iter_max, int) or iter_max < 1:
            raise ConfigurationError("kz2.iter_max must be a positive integer")

        disp = self.config.get('disparity', {})
        dmin, dmax = disp.get('min'), disp.get('max')
        if dmin is not None and dmax is not None and dmin > dmax:
            raise ConfigurationError("disparity.min must not exceed disparity.max")

        level = str(self.config.get('logging', {}).get('level', 'INFO')).upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"Unknown logging level {level}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'kz2.iter_max')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'kz2.K')
            value: Value to set
        """
        self._set(key, value)
        self._validate_config()

    def update(self, values: Dict[str, Any]) -> None:
        """
        Set several dot-notation keys, validating once at the end.

        Args:
            values: Mapping of configuration keys to values
        """
        for key, value in values.items():
            self._set(key, value)
        self._validate_config()

    def _set(self, key: str, value: Any) -> None:
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

    def save(self, output_path: Optional[str] = None) -> None:
        """
        Save current configuration to file.

        Args:
            output_path: Path to save configuration. If None, overwrites current file.
        """
        save_path = output_path or self.config_path
        if save_path is None:
            raise ConfigurationError("No path to save the configuration to")

        with open(save_path, 'w') as file:
            yaml.dump(self.config, file, default_flow_style=False, indent=2)

    def get_kz2_params(self) -> Dict[str, Any]:
        """Get the energy and optimization parameters as a dictionary."""
        return dict(self.config.get('kz2', {}))

    def get_disparity_range(self) -> Tuple[Optional[int], Optional[int]]:
        """Get the (min, max) disparity range, None where unset."""
        disp = self.config.get('disparity', {})
        return disp.get('min'), disp.get('max')

    def get_output_params(self) -> Dict[str, Any]:
        """Get the output writers parameters as a dictionary."""
        return dict(self.config.get('output', {}))
