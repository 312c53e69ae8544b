"""Errors raised by the directory client."""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for directory client failures."""


class DirectoryConnectionError(DirectoryError):
    """Raised when the directory server cannot be reached."""


class DirectoryBindError(DirectoryError):
    """Raised when the directory rejects a bind."""


class DirectorySearchError(DirectoryError):
    """Raised when a directory search fails."""
