"""Nabla Functions: a minimal function-as-a-service gateway."""

__version__ = "0.1.0"
