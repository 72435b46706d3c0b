"""Errors raised when titer bar plots are requested with invalid options."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised for invalid column names or grouping options."""


class InsufficientColorsError(ValueError):
    """Raised when the fill palette cannot cover every Pre/Post strain level."""


__all__ = ["ConfigurationError", "InsufficientColorsError"]
