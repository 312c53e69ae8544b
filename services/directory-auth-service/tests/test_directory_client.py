"""Tests for the ldap3-backed directory client using ldap3's offline mock strategy."""

from __future__ import annotations

import pytest

ldap3 = pytest.importorskip("ldap3")

from directory_auth.directory.client import DirectoryClient, DirectoryOptions  # noqa: E402
from directory_auth.directory.errors import DirectoryBindError, DirectorySearchError  # noqa: E402

SERVICE_DN = "cn=service,ou=system,dc=example,dc=org"
ALICE_DN = "uid=alice,ou=people,dc=example,dc=org"


@pytest.fixture()
def server():
    server = ldap3.Server("fake-directory")
    seed = ldap3.Connection(server, client_strategy=ldap3.MOCK_SYNC)
    seed.strategy.add_entry("dc=example,dc=org", {"objectClass": ["domain"], "dc": ["example"]})
    seed.strategy.add_entry(SERVICE_DN, {"objectClass": ["person"], "userPassword": "service-pw"})
    seed.strategy.add_entry(
        ALICE_DN,
        {
            "objectClass": ["person"],
            "uid": ["alice"],
            "givenName": ["Alice"],
            "sn": ["Liddell"],
            "mail": ["alice@example.org"],
            "userPassword": "alice-pw",
        },
    )
    return server


@pytest.fixture()
def client(server):
    options = DirectoryOptions(
        host="fake-directory",
        bind_dn=SERVICE_DN,
        bind_password="service-pw",
        base_dn="dc=example,dc=org",
    )
    with DirectoryClient(options, server=server, client_strategy=ldap3.MOCK_SYNC) as directory:
        yield directory


def test_service_bind_and_search(client):
    client.bind()

    entries = client.search("(&(objectClass=person)(uid=alice))")

    assert [entry.dn for entry in entries] == [ALICE_DN]
    assert entries[0].first("givenname") == "Alice"
    assert entries[0].first("SN") == "Liddell"


def test_search_without_match_returns_nothing(client):
    client.bind()

    assert client.search("(&(objectClass=person)(uid=nobody))") == []


def test_user_bind_checks_password(client):
    client.bind(ALICE_DN, "alice-pw")

    with pytest.raises(DirectoryBindError):
        client.bind(ALICE_DN, "wrong")


def test_empty_user_password_is_rejected_before_contacting_the_server(client):
    with pytest.raises(DirectoryBindError):
        client.bind(ALICE_DN, "")


def test_search_requires_bind(client):
    with pytest.raises(DirectorySearchError):
        client.search("(uid=alice)")


def test_filter_values_are_escaped(client):
    assert client.escape_filter_value("a*(b)\\") == "a\\2a\\28b\\29\\5c"
