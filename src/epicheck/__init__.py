"""EpiCheck: attendance scanning against the Epitech intranet."""

__version__ = "1.0.0"

__all__ = ["__version__"]
