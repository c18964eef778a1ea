"""
Configuration Management for the MHD Pipeline
Builds, validates, saves and loads the YAML run configuration.
"""

import copy
import hashlib
import logging
from pathlib import Path
from typing import Dict, Optional

import yaml

from mhd.errors import ConfigurationError

DATA_SOURCES = ("returns", "clusters", "moving_maximum")


def default_config() -> Dict:
    """Default run configuration (three synthetic Hill-estimate clusters)."""
    return {
        'data': {
            'source': 'clusters',  # 'returns', 'clusters' or 'moving_maximum'
            'returns_csv': 'data/Russell_3000_log_adj_return_040101_231231.csv',
            'tickers': None,
            'clusters': {
                'means': [0.5, 1.0, 2.0],
                'sd': 0.05,
                'weights': [0.3, 0.3, 0.4],
                'n': 500,
            },
            'moving_maximum': {
                'shapes': [4.0, 2.0, 1.0],
                'n_series': [100, 100, 100],
                'series_length': 2000,
                'coefficients': [1.0, 0.5, 0.25],
            },
            'seed': 42,
        },
        'tail_index': {
            'alphan': 0.05,
        },
        'fit': {
            'max_order': 20,
            'tol': 1.0e-5,
            'max_iter': 50,
        },
        'output': {
            'models_dir': 'models',
            'reports_dir': 'reports/mhd',
            'make_plots': True,
        },
        'logging': {
            'level': 'INFO',
            'log_file': 'logs/mhd.log',
        },
    }


def validate_config(config: Dict) -> Dict:
    """
    Check the values the fitter depends on.

    Raises:
        ConfigurationError: on an unknown data source or out-of-range parameter
    """
    try:
        source = config['data']['source']
        alphan = float(config['tail_index']['alphan'])
        max_order = int(config['fit']['max_order'])
        tol = float(config['fit']['tol'])
        max_iter = int(config['fit']['max_iter'])
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed configuration: {exc}") from exc

    if source not in DATA_SOURCES:
        raise ConfigurationError(f"Unknown data source '{source}', expected one of {DATA_SOURCES}")
    if not (0 < alphan < 1):
        raise ConfigurationError(f"tail_index.alphan must be in (0, 1), got {alphan}")
    if max_order < 1:
        raise ConfigurationError(f"fit.max_order must be >= 1, got {max_order}")
    if not tol > 0:
        raise ConfigurationError(f"fit.tol must be positive, got {tol}")
    if max_iter < 1:
        raise ConfigurationError(f"fit.max_iter must be >= 1, got {max_iter}")

    return config


def config_hash(config: Dict) -> str:
    body = {k: v for k, v in config.items() if k != 'config_hash'}
    config_str = yaml.dump(body, sort_keys=True)
    return hashlib.md5(config_str.encode()).hexdigest()


def create_config(
    overrides: Optional[Dict] = None,
    output_path: str = "config/mhd.yaml",
    logger: Optional[logging.Logger] = None,
) -> Dict:
    """
    Create, validate and save the run configuration.

    Args:
        overrides: Nested dict merged over the defaults
        output_path: Where to save the config
        logger: Optional logger

    Returns:
        Configuration dictionary (with config_hash)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    config = _merge(default_config(), overrides or {})
    validate_config(config)

    # Compute config hash for reproducibility
    config['config_hash'] = config_hash(config)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    logger.info("Saved MHD config to %s", output_path)
    logger.info("Config hash: %s", config['config_hash'])

    return config


def load_config(config_path: str = "config/mhd.yaml") -> Dict:
    """Load and validate a run configuration, filling missing keys from the defaults."""
    with open(config_path, 'r') as f:
        loaded = yaml.safe_load(f) or {}
    return validate_config(_merge(default_config(), loaded))


def _merge(base: Dict, overrides: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
