from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock

import pytest

from directory_auth.config import Settings
from directory_auth.directory.client import SEARCH_SCOPE_SUB
from directory_auth.directory.entry import DirectoryEntry
from directory_auth.directory.errors import DirectoryBindError, DirectoryConnectionError
from directory_auth.domain.contracts import NewPrincipal
from directory_auth.domain.principal import SYSTEM_PRINCIPAL_ID, Principal, PrincipalType
from directory_auth.domain.service import CredentialResolver
from directory_auth.security.passwords import PasswordHasher
from directory_auth.security.provisioning_lock import InMemoryProvisioningLock


class FakeRepository:
    """In-memory repository mimicking Postgres-backed behaviors."""

    def __init__(self) -> None:
        self._principals: dict[str, Principal] = {}
        self._lock = Lock()
        self.created: list[Principal] = []
        self.audit_log: list[dict] = []

    def add(self, principal: Principal) -> Principal:
        self._principals[principal.principal_id] = principal
        return principal

    def find_by_username(self, username: str, *, exclude_types=()):
        for principal in list(self._principals.values()):
            if principal.username.lower() == username.lower() and principal.type not in exclude_types:
                return principal
        return None

    def find_by_credentials(self, username: str, password_hash: str, *, types=None, exclude_types=()):
        for principal in list(self._principals.values()):
            if principal.username.lower() != username.lower() or principal.password_hash != password_hash:
                continue
            if principal.type in exclude_types:
                continue
            if types is not None and principal.type not in types:
                continue
            return principal
        return None

    def get_principal(self, principal_id: str):
        return self._principals.get(principal_id)

    def create_principal(self, payload: NewPrincipal, *, created_by: str | None):
        with self._lock:
            existing = self.find_by_username(
                payload.username, exclude_types=(PrincipalType.api, PrincipalType.system)
            )
            if existing is not None:
                return existing
            principal = Principal(
                principal_id=str(uuid.uuid4()),
                username=payload.username,
                type=payload.type,
                created_at=datetime.now(timezone.utc),
                first_name=payload.first_name,
                last_name=payload.last_name,
                title=payload.title,
                email_address=payload.email_address,
                phone_number=payload.phone_number,
                teams_ids=list(payload.teams_ids),
                default_team_id=payload.default_team_id,
                portals_ids=list(payload.portals_ids),
                portal_roles_ids=list(payload.portal_roles_ids),
                created_by=created_by,
            )
            self._principals[principal.principal_id] = principal
            self.created.append(principal)
            return principal

    def write_audit_event(self, *, principal_id, event_type, actor, metadata=None) -> None:
        self.audit_log.append(
            {
                "principal_id": principal_id,
                "event_type": event_type,
                "actor": actor,
                "metadata": metadata or {},
            }
        )


class FakeDirectory:
    """Directory state shared by every client a resolver opens during a test."""

    host = "ldap.example.org"

    def __init__(self) -> None:
        self._users: dict[str, tuple[DirectoryEntry, str]] = {}
        self.service_bind_error: Exception | None = None
        self.search_error: Exception | None = None
        self.binds: list[str | None] = []
        self.searches: list[str] = []
        self.opened = 0
        self.closed = 0

    def add_user(self, uid: str, password: str, **attributes) -> DirectoryEntry:
        dn = f"uid={uid},ou=people,dc=example,dc=org"
        entry = DirectoryEntry.from_attributes(
            dn, {"objectClass": ["person"], "uid": [uid], **attributes}
        )
        self._users[dn] = (entry, password)
        return entry

    def client(self) -> "FakeDirectoryClient":
        self.opened += 1
        return FakeDirectoryClient(self)


class FakeDirectoryClient:
    def __init__(self, directory: FakeDirectory) -> None:
        self._directory = directory

    @property
    def host(self) -> str:
        return self._directory.host

    def __enter__(self) -> "FakeDirectoryClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self._directory.closed += 1

    def bind(self, dn: str | None = None, password: str | None = None) -> None:
        self._directory.binds.append(dn)
        if dn is None:
            if self._directory.service_bind_error is not None:
                raise self._directory.service_bind_error
            return
        stored = self._directory._users.get(dn)
        if stored is None or stored[1] != password:
            raise DirectoryBindError(f"bind rejected for {dn}: invalidCredentials")

    def escape_filter_value(self, value: str) -> str:
        return (
            value.replace("\\", "\\5c").replace("*", "\\2a").replace("(", "\\28").replace(")", "\\29")
        )

    def search(self, search_filter: str, base: str | None = None, scope: str = SEARCH_SCOPE_SUB):
        self._directory.searches.append(search_filter)
        if self._directory.search_error is not None:
            raise self._directory.search_error
        return [
            entry
            for entry, _ in self._directory._users.values()
            if f"(uid={entry.first('uid')})" in search_filter
        ]


HASH_SALT = "test-salt"


@pytest.fixture()
def hasher() -> PasswordHasher:
    return PasswordHasher(HASH_SALT, iterations=1000)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        password_salt=HASH_SALT,
        password_hash_iterations=1000,
        ldap_host="ldap.example.org",
        ldap_base_dn="dc=example,dc=org",
        ldap_user_object_class="person",
        ldap_user_name_attribute="uid",
        ldap_user_login_filter="",
        ldap_user_first_name_attribute="givenName",
        ldap_user_last_name_attribute="sn",
        ldap_user_title_attribute="title",
        ldap_user_email_address_attribute="mail",
        ldap_user_phone_number_attribute="telephoneNumber",
        ldap_create_user=True,
        ldap_portal_user_ldap_auth=True,
        ldap_user_teams_ids=("team-sales",),
        ldap_user_default_team_id="team-sales",
        ldap_portal_user_portals_ids=("portal-customers",),
        ldap_portal_user_roles_ids=("role-customer",),
    )


@pytest.fixture()
def repository() -> FakeRepository:
    repo = FakeRepository()
    repo.add(
        Principal(
            principal_id=SYSTEM_PRINCIPAL_ID,
            username="system",
            type=PrincipalType.system,
            created_at=datetime.now(timezone.utc),
        )
    )
    return repo


@pytest.fixture()
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture()
def make_resolver(repository, directory, settings, hasher):
    """Build a resolver over the fakes, optionally overriding settings fields."""

    def factory(**overrides) -> CredentialResolver:
        return CredentialResolver(
            repository,
            directory.client,
            password_hasher=hasher,
            provisioning_lock=InMemoryProvisioningLock(timeout_seconds=5),
            settings=replace(settings, **overrides),
        )

    return factory


@pytest.fixture()
def add_admin(repository, hasher):
    def factory(username: str = "root", password: str = "s3cret", type: PrincipalType = PrincipalType.admin):
        return repository.add(
            Principal(
                principal_id=str(uuid.uuid4()),
                username=username,
                type=type,
                created_at=datetime.now(timezone.utc),
                password_hash=hasher.hash(password),
            )
        )

    return factory


@pytest.fixture()
def unreachable() -> DirectoryConnectionError:
    return DirectoryConnectionError("cannot reach directory server ldap.example.org: timed out")
