"""Credential resolver: directory bind authentication with local fallback and provisioning."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import jwt
from pydantic import BaseModel

from schemas import AdminFallbackLogin, AuthEventType, PrincipalProvisioned, TokenMismatchDetected

from .contracts import AuthenticationResult, AuthOutcome, NewPrincipal
from .email_address import EmailAddress, EmailAddressValidationError
from .errors import ConfigurationError
from .field_map import FieldMapKind, load_fields
from .identity import ActingIdentity
from .principal import ADMIN_TYPES, NON_INTERACTIVE_TYPES, SYSTEM_PRINCIPAL_ID, Principal, PrincipalType
from ..config import Settings, get_settings
from ..directory.client import SEARCH_SCOPE_SUB, DirectoryClient
from ..directory.entry import DirectoryEntry
from ..directory.errors import DirectoryError
from ..repository import PrincipalRepository
from ..security.passwords import PasswordHasher
from ..security.provisioning_lock import InMemoryProvisioningLock, ProvisioningLockTimeout
from ..security.redis_provisioning_lock import RedisProvisioningLock
from ..security.tokens import decode_access_token

logger = logging.getLogger(__name__)

LOGOUT_USERNAME = "**logout"


def normalize_login_filter(login_filter: str) -> str:
    """Trim a directory filter fragment and wrap it in parentheses when missing.

    >>> normalize_login_filter("memberof=CN=testers,OU=groups,DC=example,DC=org")
    '(memberof=CN=testers,OU=groups,DC=example,DC=org)'
    """
    login_filter = login_filter.strip()
    if not login_filter.startswith("("):
        login_filter = "(" + login_filter
    if not login_filter.endswith(")"):
        login_filter = login_filter + ")"
    return login_filter


class CredentialResolver:
    """Authentication decisions for the directory-backed login flow.

    Each call to :meth:`authenticate` opens its own directory connection via
    ``directory_factory``, so a resolver can be shared between requests.
    """

    def __init__(
        self,
        repository: PrincipalRepository,
        directory_factory: Callable[[], DirectoryClient],
        *,
        password_hasher: PasswordHasher,
        provisioning_lock: InMemoryProvisioningLock | RedisProvisioningLock,
        settings: Settings | None = None,
    ) -> None:
        """Store collaborators used to resolve, verify, and provision principals."""
        self._repository = repository
        self._directory_factory = directory_factory
        self._password_hasher = password_hasher
        self._provisioning_lock = provisioning_lock
        self._settings = settings or get_settings()

    def authenticate(
        self,
        username: str | None,
        password: str | None,
        token: str | None = None,
        *,
        portal: bool = False,
        remote_address: str | None = None,
        identity: ActingIdentity | None = None,
    ) -> AuthenticationResult:
        """Resolve the principal for a login attempt.

        Parameters
        ----------
        username:
            Login name supplied by the caller.
        password:
            Plain password; ignored when ``token`` is given.
        token:
            Session token from an earlier login. When present the directory is
            not consulted.
        portal:
            Whether the attempt comes from a portal context.
        remote_address:
            Network origin of the caller, reported on token misuse.
        identity:
            Request-scoped acting identity; switched to the system principal
            before provisioning side effects.

        Returns
        -------
        AuthenticationResult
            ``no_attempt`` when there is nothing to verify, otherwise the
            outcome and, on success, the principal.

        Raises
        ------
        ConfigurationError
            The system principal is missing when the acting identity has to be
            switched.
        """
        identity = identity if identity is not None else ActingIdentity()

        if token:
            return self.login_by_token(username or "", token, remote_address=remote_address)

        if not username or not password or username == LOGOUT_USERNAME:
            return AuthenticationResult.failure(AuthOutcome.no_attempt)

        if portal and not self._settings.ldap_portal_user_ldap_auth:
            return self._local_login(username, password)

        with self._directory_factory() as directory:
            return self._directory_login(directory, username, password, portal, identity)

    def login_by_token(
        self, username: str, token: str, *, remote_address: str | None = None
    ) -> AuthenticationResult:
        """Resolve a principal from a session token, cross-checking the claimed username."""
        try:
            claims = decode_access_token(token)
        except jwt.PyJWTError as exc:
            logger.warning("token login rejected for user [%s]: %s", username, exc)
            return AuthenticationResult.failure(AuthOutcome.invalid_token)

        owner = self._repository.get_principal(str(claims["sub"]))
        if owner is None:
            logger.warning("token login rejected for user [%s]: token owner no longer exists", username)
            return AuthenticationResult.failure(AuthOutcome.invalid_token)

        if username.lower() != owner.username.lower():
            logger.critical(
                "Unauthorized access attempt for user [%s] from IP [%s]",
                username,
                remote_address or "",
            )
            self._record_audit(
                AuthEventType.token_mismatch,
                principal_id=owner.principal_id,
                actor=None,
                event=TokenMismatchDetected(
                    claimed_username=username,
                    token_principal_id=owner.principal_id,
                    remote_address=remote_address,
                    occurred_at=datetime.now(timezone.utc),
                ),
            )
            return AuthenticationResult.failure(AuthOutcome.token_mismatch)

        return AuthenticationResult.success(owner)

    def _directory_login(
        self,
        directory: DirectoryClient,
        username: str,
        password: str,
        portal: bool,
        identity: ActingIdentity,
    ) -> AuthenticationResult:
        try:
            directory.bind()
        except DirectoryError as exc:
            logger.error("LDAP: could not connect to LDAP server [%s], details: %s", directory.host, exc)
            return self._admin_fallback(username, password, AuthOutcome.unavailable, reason="directory unavailable")

        entry: DirectoryEntry | None = None
        try:
            entry = self._find_user_entry(directory, username)
        except DirectoryError as exc:
            logger.error("LDAP: error while finding DN for user [%s], details: %s", username, exc)

        if entry is None:
            logger.warning("LDAP: authentication failed for user [%s], details: user is not found", username)
            return self._admin_fallback(username, password, AuthOutcome.user_not_found, reason="user not found")

        logger.debug("LDAP: user [%s] is found with DN [%s]", username, entry.dn)

        try:
            directory.bind(entry.dn, password)
        except DirectoryError as exc:
            logger.error("LDAP: authentication failed for user [%s], details: %s", username, exc)
            return AuthenticationResult.failure(AuthOutcome.invalid_credentials)

        principal = self._repository.find_by_username(username, exclude_types=NON_INTERACTIVE_TYPES)
        if principal is not None:
            return AuthenticationResult.success(principal)

        if not self._settings.ldap_create_user:
            self._use_system_principal(identity)
            logger.warning("LDAP: user [%s] authenticated but has no local account and provisioning is disabled", username)
            return AuthenticationResult.failure(AuthOutcome.provisioning_disabled)

        try:
            with self._provisioning_lock.hold(username):
                principal = self._repository.find_by_username(username, exclude_types=NON_INTERACTIVE_TYPES)
                if principal is None:
                    principal = self._create_principal(entry, username, portal, identity)
        except ProvisioningLockTimeout as exc:
            logger.error("LDAP: could not provision user [%s]: %s", username, exc)
            return AuthenticationResult.failure(AuthOutcome.unavailable)

        return AuthenticationResult.success(principal)

    def _find_user_entry(self, directory: DirectoryClient, username: str) -> DirectoryEntry | None:
        settings = self._settings
        login_filter = ""
        if settings.ldap_user_login_filter.strip():
            login_filter = normalize_login_filter(settings.ldap_user_login_filter)

        search_filter = "(&(objectClass={object_class})({attribute}={value}){login_filter})".format(
            object_class=settings.ldap_user_object_class,
            attribute=settings.ldap_user_name_attribute,
            value=directory.escape_filter_value(username),
            login_filter=login_filter,
        )
        logger.debug('LDAP: user search string: "%s"', search_filter)

        entries = directory.search(search_filter, None, SEARCH_SCOPE_SUB)
        return entries[0] if entries else None

    def _local_login(self, username: str, password: str) -> AuthenticationResult:
        principal = self._repository.find_by_credentials(
            username,
            self._password_hasher.hash(password),
            exclude_types=NON_INTERACTIVE_TYPES,
        )
        if principal is None:
            logger.warning("local authentication failed for user [%s]", username)
            return AuthenticationResult.failure(AuthOutcome.invalid_credentials)
        return AuthenticationResult.success(principal)

    def _admin_fallback(
        self, username: str, password: str, failure: AuthOutcome, *, reason: str
    ) -> AuthenticationResult:
        admin = self._repository.find_by_credentials(
            username,
            self._password_hasher.hash(password),
            types=ADMIN_TYPES,
        )
        if admin is None:
            return AuthenticationResult.failure(failure)

        logger.info("LDAP: administrator [%s] was logged in by local method", username)
        self._record_audit(
            AuthEventType.admin_fallback,
            principal_id=admin.principal_id,
            actor=admin.principal_id,
            event=AdminFallbackLogin(
                principal_id=admin.principal_id,
                username=admin.username,
                reason=reason,
                occurred_at=datetime.now(timezone.utc),
            ),
        )
        return AuthenticationResult.success(admin)

    def _use_system_principal(self, identity: ActingIdentity) -> None:
        system = self._repository.get_principal(SYSTEM_PRINCIPAL_ID)
        if system is None:
            raise ConfigurationError("System user is not found.")
        identity.use(system)

    def _create_principal(
        self, entry: DirectoryEntry, username: str, portal: bool, identity: ActingIdentity
    ) -> Principal:
        logger.info("LDAP: creating new user [%s]", username)
        logger.debug("LDAP: user data for [%s]: %s", entry.dn, dict(entry.attributes))

        options = self._settings.ldap_options()
        data: dict[str, Any] = {}
        for field_name, attribute in load_fields(FieldMapKind.ldap, options).items():
            value = entry.first(attribute)
            if value is None:
                continue
            logger.debug("LDAP: create a user with [%s] = [%s]", field_name, value)
            data[field_name] = value

        if "email_address" in data:
            try:
                data["email_address"] = EmailAddress.parse(data["email_address"]).address
            except EmailAddressValidationError:
                logger.warning("LDAP: ignoring invalid email address [%s] for user [%s]", data["email_address"], username)
                del data["email_address"]

        if portal:
            data.update(load_fields(FieldMapKind.portal_user, options))
            data["type"] = PrincipalType.portal
        else:
            data.update(load_fields(FieldMapKind.user, options))

        data.setdefault("username", username)
        payload = NewPrincipal(**data)

        self._use_system_principal(identity)
        created = self._repository.create_principal(payload, created_by=identity.principal_id)
        principal = self._repository.get_principal(created.principal_id) or created

        self._record_audit(
            AuthEventType.principal_provisioned,
            principal_id=principal.principal_id,
            actor=identity.principal_id,
            event=PrincipalProvisioned(
                principal_id=principal.principal_id,
                username=principal.username,
                source_dn=entry.dn,
                portal=portal,
                copied_fields=sorted(data),
                occurred_at=datetime.now(timezone.utc),
            ),
        )
        return principal

    def _record_audit(
        self,
        event_type: AuthEventType,
        *,
        principal_id: str | None,
        actor: str | None,
        event: BaseModel,
    ) -> None:
        # audit failures must not change the authentication outcome
        try:
            self._repository.write_audit_event(
                principal_id=principal_id,
                event_type=event_type.value,
                actor=actor,
                metadata=event.model_dump(mode="json"),
            )
        except Exception:
            logger.exception("failed to record audit event %s", event_type.value)
