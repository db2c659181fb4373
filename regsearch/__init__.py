"""Retrieval core for regulation documents."""

__version__ = "0.1.0"
