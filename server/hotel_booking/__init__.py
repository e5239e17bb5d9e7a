"""Hotel room inventory booking engine with temporary holds."""

__version__ = "1.0.0"
