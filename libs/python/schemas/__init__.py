"""Shared schema exports."""

from .auth_events import AdminFallbackLogin, AuthEventType, PrincipalProvisioned, TokenMismatchDetected
from .principal import PrincipalSummary

__all__ = [
    "AdminFallbackLogin",
    "AuthEventType",
    "PrincipalProvisioned",
    "PrincipalSummary",
    "TokenMismatchDetected",
]
