"""Potty Timer: a persistent single-countdown reminder service."""

__version__ = "0.1.0"
