"""Vocabulary and culture content service."""

__version__ = "0.3.0"
