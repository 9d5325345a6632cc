"""Aggregated GitHub contribution statistics rendered as an SVG card."""

__version__ = "1.0.0"
