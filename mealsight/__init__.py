"""Mealsight: confidence-aware meal photo recognition with a per-user learning loop."""

__version__ = "0.1.0"
