"""Crew roster query & selection engine."""

__version__ = "0.1.0"
