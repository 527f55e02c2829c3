"""Monthly charity prize draw: draw computation and settlement engine."""

__version__ = "0.1.0"
