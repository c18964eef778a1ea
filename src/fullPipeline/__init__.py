"""
Full Pipeline Module

Runs the MHD mixture-order selection end to end: builds a tail-index
sample, selects the mixture, assigns clusters, evaluates against ground
truth when it exists, and saves artifacts and figures.
"""

from .config import create_config, default_config, load_config, validate_config
from .run import load_sample, run_pipeline, setup_logging

__all__ = [
    "create_config",
    "default_config",
    "load_config",
    "validate_config",
    "load_sample",
    "run_pipeline",
    "setup_logging",
]
