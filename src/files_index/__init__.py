"""Indexed file listings over a key-value object store."""

__version__ = "0.1.0"
