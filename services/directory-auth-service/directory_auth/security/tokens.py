"""Utilities for issuing and validating session JWTs."""

from __future__ import annotations

import time
from typing import Any

import jwt

from ..config import get_settings


def issue_access_token(*, subject: str, username: str, principal_type: str, portal: bool = False) -> tuple[str, int]:
    """Create a signed JWT representing an authenticated principal.

    Parameters
    ----------
    subject:
        Principal identifier to embed in the token `sub` claim.
    username:
        Username the principal logged in with; re-checked on every token login.
    principal_type:
        Principal type recorded for downstream authorization decisions.
    portal:
        Whether the session belongs to a portal context.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "username": username,
        "type": principal_type,
        "portal": portal,
        "iat": now,
        "exp": now + expires_in,
    }

    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Parameters
    ----------
    token:
        Encoded JWT issued by this service.

    Returns
    -------
    dict[str, Any]
        The decoded payload if signature and issuer checks succeed.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=None,
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
