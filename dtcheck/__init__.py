"""Device tree model with structural, semantic and style checks."""

__version__ = "0.1.0"

__all__ = ["__version__"]