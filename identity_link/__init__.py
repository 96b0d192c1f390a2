"""GitHub identity linking with email consent audit."""

__version__ = "0.1.0"
