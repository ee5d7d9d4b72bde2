"""Simulated operating-system kernel with long, medium and short-term schedulers served over HTTP."""

__version__ = "0.1.0"