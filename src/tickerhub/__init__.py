"""Tickerhub: market data from multiple vendors behind one fallback-aware manager."""

__version__ = "0.1.0"
