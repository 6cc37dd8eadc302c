"""Leveled console and file logging with message history, and SQLite query helpers."""

__version__ = "0.1.0"