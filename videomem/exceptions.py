"""Exceptions shared across videomem components."""

from __future__ import annotations


class VideomemError(Exception):
    """Base class for videomem errors."""


class ConfigurationError(VideomemError):
    """Missing or invalid configuration, raised at construction time."""
