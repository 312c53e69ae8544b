"""Domain-level request and result contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .principal import Principal, PrincipalType


@dataclass(slots=True)
class NewPrincipal:
    """Inputs required to persist a principal provisioned from directory data."""

    username: str
    type: PrincipalType = PrincipalType.regular
    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    email_address: str | None = None
    phone_number: str | None = None
    teams_ids: list[str] = field(default_factory=list)
    default_team_id: str | None = None
    portals_ids: list[str] = field(default_factory=list)
    portal_roles_ids: list[str] = field(default_factory=list)


class AuthOutcome(str, Enum):
    authenticated = "authenticated"
    no_attempt = "no_attempt"
    unavailable = "unavailable"
    user_not_found = "user_not_found"
    invalid_credentials = "invalid_credentials"
    provisioning_disabled = "provisioning_disabled"
    token_mismatch = "token_mismatch"
    invalid_token = "invalid_token"


@dataclass(slots=True)
class AuthenticationResult:
    """Outcome of a single authentication attempt.

    Failure outcomes exist for diagnostics only; callers present all of them
    the same way.
    """

    outcome: AuthOutcome
    principal: Principal | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AuthOutcome.authenticated and self.principal is not None

    @classmethod
    def success(cls, principal: Principal) -> "AuthenticationResult":
        return cls(outcome=AuthOutcome.authenticated, principal=principal)

    @classmethod
    def failure(cls, outcome: AuthOutcome) -> "AuthenticationResult":
        return cls(outcome=outcome)
