"""Automount removable drives as Steam libraries and notify the Steam client."""

__version__ = "0.1.0"
