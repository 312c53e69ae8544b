from __future__ import annotations

import pytest

from directory_auth.domain.email_address import EmailAddress, EmailAddressValidationError


@pytest.mark.parametrize("raw", ["one", "", "missing-at.example.org", "two@@example.org", "spaces in@example.org"])
def test_invalid_addresses_are_rejected(raw):
    with pytest.raises(EmailAddressValidationError):
        EmailAddress.parse(raw)


@pytest.mark.parametrize("raw", ["test@example.com", "first.last+tag@sub.example.org", "  padded@example.net  "])
def test_valid_addresses_keep_their_text(raw):
    address = EmailAddress.parse(raw)

    assert address.address == raw.strip()
    assert not address.is_invalid()
    assert not address.is_opted_out()


def test_domain_is_normalized():
    assert EmailAddress.parse("User@EXAMPLE.COM").address == "User@example.com"


def test_with_invalid():
    address = EmailAddress.parse("test@example.com").with_invalid()

    assert address.address == "test@example.com"
    assert address.is_invalid()
    assert not address.is_opted_out()


def test_with_opted_out():
    address = EmailAddress.parse("test@example.com").with_opted_out()

    assert not address.is_invalid()
    assert address.is_opted_out()


def test_flags_round_trip():
    address = (
        EmailAddress.parse("test@example.com")
        .with_opted_out()
        .without_opted_out()
        .with_invalid()
        .without_invalid()
    )

    assert not address.is_invalid()
    assert not address.is_opted_out()
    assert address == EmailAddress.parse("test@example.com")


def test_toggling_one_flag_keeps_the_other():
    opted_out = EmailAddress.parse("test@example.com").with_opted_out()

    assert opted_out.with_invalid().is_opted_out()
    assert opted_out.without_invalid().is_opted_out()
    assert opted_out.with_invalid().without_opted_out().is_invalid()


def test_receiver_is_never_mutated():
    original = EmailAddress.parse("test@example.com")

    flagged = original.with_invalid()
    flagged.with_opted_out()

    assert flagged is not original
    assert not original.is_invalid()
    assert not original.is_opted_out()
    assert flagged.is_invalid()
    assert not flagged.is_opted_out()
    with pytest.raises(AttributeError):
        original.invalid = True  # type: ignore[misc]
