"""Errors that escape the credential resolver."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """The deployment is missing something the resolver cannot work without."""
