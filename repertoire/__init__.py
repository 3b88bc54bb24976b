"""Scan a chess player's repertoire and review single games with a UCI engine."""

__version__ = "0.1.0"
