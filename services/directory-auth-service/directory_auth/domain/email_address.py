"""Immutable email address value object."""

from __future__ import annotations

from dataclasses import dataclass, replace

from email_validator import EmailNotValidError, validate_email


class EmailAddressValidationError(ValueError):
    """Raised when a raw string is not a syntactically valid email address."""


@dataclass(frozen=True, slots=True)
class EmailAddress:
    """Validated address text plus independent ``invalid`` and ``opted_out`` flags.

    Flag operations return a new instance; the receiver keeps its state.

    >>> address = EmailAddress.parse("test@example.com").with_invalid()
    >>> address.is_invalid(), address.is_opted_out()
    (True, False)
    """

    address: str
    invalid: bool = False
    opted_out: bool = False

    @classmethod
    def parse(cls, raw: str) -> "EmailAddress":
        """Validate ``raw`` and return an unflagged value holding its normalized form."""
        try:
            validated = validate_email(raw.strip(), check_deliverability=False)
        except EmailNotValidError as exc:
            raise EmailAddressValidationError(f"invalid email address: {raw!r}") from exc
        return cls(address=validated.normalized)

    def is_invalid(self) -> bool:
        return self.invalid

    def is_opted_out(self) -> bool:
        return self.opted_out

    def with_invalid(self) -> "EmailAddress":
        return replace(self, invalid=True)

    def without_invalid(self) -> "EmailAddress":
        return replace(self, invalid=False)

    def with_opted_out(self) -> "EmailAddress":
        return replace(self, opted_out=True)

    def without_opted_out(self) -> "EmailAddress":
        return replace(self, opted_out=False)

    def __str__(self) -> str:
        return self.address
