from __future__ import annotations

from dataclasses import dataclass

from .principal import Principal


@dataclass(slots=True)
class ActingIdentity:
    """Request-scoped slot naming the principal that side effects are attributed to."""

    principal: Principal | None = None

    def use(self, principal: Principal) -> None:
        self.principal = principal

    @property
    def principal_id(self) -> str | None:
        return self.principal.principal_id if self.principal is not None else None
