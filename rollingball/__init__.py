"""Camera-driven shape detection feeding a rigid-body simulation."""

__version__ = "0.1.0"
