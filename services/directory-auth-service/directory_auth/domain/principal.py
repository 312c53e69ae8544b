from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

SYSTEM_PRINCIPAL_ID = "system"


class PrincipalType(str, Enum):
    regular = "regular"
    admin = "admin"
    super_admin = "super-admin"
    portal = "portal"
    api = "api"
    system = "system"


# Types that never take part in interactive login lookups.
NON_INTERACTIVE_TYPES: tuple[PrincipalType, ...] = (PrincipalType.api, PrincipalType.system)
ADMIN_TYPES: tuple[PrincipalType, ...] = (PrincipalType.admin, PrincipalType.super_admin)


@dataclass(slots=True)
class Principal:
    """Local account record representing an authenticated identity."""

    principal_id: str
    username: str
    type: PrincipalType
    created_at: datetime
    password_hash: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    email_address: str | None = None
    phone_number: str | None = None
    teams_ids: list[str] = field(default_factory=list)
    default_team_id: str | None = None
    portals_ids: list[str] = field(default_factory=list)
    portal_roles_ids: list[str] = field(default_factory=list)
    created_by: str | None = None
