"""Bluebird: Spotify listening-history sync service."""

__version__ = "0.3.0"
