"""Authentication audit event contracts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field


class AuthEventType(str, Enum):
    principal_provisioned = "principal.provisioned"
    admin_fallback = "auth.admin_fallback"
    token_mismatch = "auth.token_mismatch"


class PrincipalProvisioned(BaseModel):
    principal_id: str
    username: str
    source_dn: str
    portal: bool = False
    copied_fields: list[str] = Field(default_factory=list)
    occurred_at: datetime


class AdminFallbackLogin(BaseModel):
    principal_id: str
    username: str
    reason: str
    occurred_at: datetime


class TokenMismatchDetected(BaseModel):
    claimed_username: str
    token_principal_id: str
    remote_address: str | None = None
    occurred_at: datetime