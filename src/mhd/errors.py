"""
Exception and warning types shared by the MHD fitting utilities.
"""


class DomainError(ValueError):
    """Input violates a statistical precondition (too few points, bad tail fraction, ...)."""


class ConfigurationError(ValueError):
    """Invalid tuning parameter (max_order < 1, tol <= 0, ...)."""


class NumericalWarning(RuntimeWarning):
    """Optimizer stopped without meeting its own tolerance; best candidate is kept."""
