"""Directory (LDAP) client used by the credential resolver.

The client wraps an ``ldap3`` connection that is bound once per
authentication attempt: first with the service credentials to search, then
with the end user's DN and password to verify them.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import Any

from ..config import Settings
from .entry import DirectoryEntry
from .errors import DirectoryBindError, DirectoryConnectionError, DirectorySearchError

logger = logging.getLogger(__name__)

# Same string value as ldap3.SUBTREE.
SEARCH_SCOPE_SUB = "SUBTREE"

# success, sizeLimitExceeded, noSuchObject
_SEARCH_OK_CODES = frozenset({0, 4, 32})


def _get_ldap3():
    """Lazy import ldap3 so the service imports without the directory extra."""
    try:
        import ldap3
    except ImportError as exc:
        raise ImportError(
            "ldap3 is required for directory authentication. "
            "Install with: pip install 'directory-auth-service[ldap]'"
        ) from exc
    return ldap3


@dataclass(frozen=True, slots=True)
class DirectoryOptions:
    """Connection parameters for the directory server."""

    host: str
    port: int = 389
    use_ssl: bool = False
    start_tls: bool = False
    tls_validate: bool = True
    bind_dn: str = ""
    bind_password: str = ""
    base_dn: str = ""
    connect_timeout: int = 5
    search_timeout: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "DirectoryOptions":
        return cls(
            host=settings.ldap_host,
            port=settings.ldap_port,
            use_ssl=settings.ldap_use_ssl,
            start_tls=settings.ldap_start_tls,
            tls_validate=settings.ldap_tls_validate,
            bind_dn=settings.ldap_bind_dn,
            bind_password=settings.ldap_bind_password,
            base_dn=settings.ldap_base_dn,
            connect_timeout=settings.ldap_connect_timeout,
            search_timeout=settings.ldap_search_timeout,
        )


class DirectoryClient:
    """Bind and search against a directory server through ``ldap3``."""

    def __init__(
        self,
        options: DirectoryOptions,
        *,
        server: Any | None = None,
        client_strategy: str | None = None,
    ) -> None:
        """Store connection options; ``server``/``client_strategy`` override the ldap3 defaults."""
        self._options = options
        self._server = server
        self._client_strategy = client_strategy
        self._connection: Any | None = None

    @property
    def host(self) -> str:
        return self._options.host

    def __enter__(self) -> "DirectoryClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _build_server(self) -> Any:
        if self._server is None:
            ldap3 = _get_ldap3()
            tls = None
            if self._options.use_ssl or self._options.start_tls:
                tls = ldap3.Tls(validate=ssl.CERT_REQUIRED if self._options.tls_validate else ssl.CERT_NONE)
            self._server = ldap3.Server(
                self._options.host,
                port=self._options.port,
                use_ssl=self._options.use_ssl,
                tls=tls,
                connect_timeout=self._options.connect_timeout,
                get_info=ldap3.NONE,
            )
        return self._server

    def bind(self, dn: str | None = None, password: str | None = None) -> None:
        """Bind the connection; without arguments the service credentials are used.

        Raises
        ------
        DirectoryConnectionError
            The server could not be reached or the exchange failed.
        DirectoryBindError
            The server rejected the credentials.
        """
        if dn is None:
            user, secret = self._options.bind_dn or None, self._options.bind_password or None
        else:
            if not password:
                # an empty password would turn into an unauthenticated bind
                raise DirectoryBindError(f"bind rejected for {dn}: empty password")
            user, secret = dn, password

        ldap3 = _get_ldap3()
        self.close()
        extra: dict[str, Any] = {}
        if self._client_strategy is not None:
            extra["client_strategy"] = self._client_strategy
        try:
            connection = ldap3.Connection(
                self._build_server(),
                user=user,
                password=secret,
                read_only=True,
                receive_timeout=self._options.connect_timeout,
                raise_exceptions=False,
                **extra,
            )
            if self._options.start_tls and not self._options.use_ssl:
                connection.open()
                connection.start_tls()
            bound = connection.bind()
        except ldap3.core.exceptions.LDAPException as exc:
            raise DirectoryConnectionError(f"cannot reach directory server {self._options.host}: {exc}") from exc

        if not bound:
            description = (connection.result or {}).get("description") or "unknown error"
            self._unbind(connection)
            raise DirectoryBindError(f"bind rejected for {user or 'anonymous'}: {description}")
        self._connection = connection

    def escape_filter_value(self, value: str) -> str:
        """Escape ``value`` for use inside a search filter assertion."""
        return _get_ldap3().utils.conv.escape_filter_chars(value)

    def search(
        self, search_filter: str, base: str | None = None, scope: str = SEARCH_SCOPE_SUB
    ) -> list[DirectoryEntry]:
        """Run a search on the bound connection and return the matching entries."""
        if self._connection is None:
            raise DirectorySearchError("search requires a bound connection")

        ldap3 = _get_ldap3()
        try:
            self._connection.search(
                search_base=base or self._options.base_dn,
                search_filter=search_filter,
                search_scope=scope,
                attributes=ldap3.ALL_ATTRIBUTES,
                time_limit=self._options.search_timeout,
            )
        except ldap3.core.exceptions.LDAPException as exc:
            raise DirectorySearchError(f"directory search failed: {exc}") from exc

        result = self._connection.result or {}
        if result.get("result", 0) not in _SEARCH_OK_CODES:
            raise DirectorySearchError(f"directory search failed: {result.get('description')}")

        entries: list[DirectoryEntry] = []
        for item in self._connection.response or []:
            if item.get("type") != "searchResEntry":
                continue
            entries.append(DirectoryEntry.from_attributes(item["dn"], item.get("attributes") or {}))
        return entries

    def close(self) -> None:
        """Unbind the current connection, if any."""
        if self._connection is not None:
            connection, self._connection = self._connection, None
            self._unbind(connection)

    @staticmethod
    def _unbind(connection: Any) -> None:
        ldap3 = _get_ldap3()
        try:
            connection.unbind()
        except ldap3.core.exceptions.LDAPException as exc:
            logger.debug("LDAP: unbind failed: %s", exc)
