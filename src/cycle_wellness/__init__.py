"""Cycle-aware wellness assistant: energy forecasts, calendar advice and planning."""

__version__ = "0.1.0"
