"""Grouped evaluation of test specs against pluggable API providers."""

__version__ = "0.1.0"
