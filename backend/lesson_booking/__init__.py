"""Lesson booking engine: slot availability and conflict-safe reservations."""

__version__ = "0.1.0"
