"""Occupation taxonomy with hierarchy integrity checks and a trigger-based audit trail."""

__version__ = "1.0.0"
