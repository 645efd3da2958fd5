"""
Battery management estimation-and-control core.

Per-sample state estimation, predictive thermal control, hysteresis based
safety monitoring and charge current optimization.
"""

__version__ = "0.3.0"
