"""Principal DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel


class PrincipalSummary(BaseModel):
    principal_id: str
    username: str
    type: str
    created_at: datetime
    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    email_address: str | None = None
    phone_number: str | None = None
    teams_ids: list[str] = []
    default_team_id: str | None = None
    portals_ids: list[str] = []
    portal_roles_ids: list[str] = []
