"""Database repository for local principals and the authentication audit trail."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.contracts import NewPrincipal
from .domain.principal import Principal, PrincipalType

logger = logging.getLogger(__name__)

_PRINCIPAL_COLUMNS = """
    principal_id, username, type, created_at, password_hash, first_name, last_name, title,
    email_address, phone_number, teams_ids, default_team_id, portals_ids, portal_roles_ids,
    created_by
"""


def _type_values(types: Iterable[PrincipalType]) -> list[str]:
    return [principal_type.value for principal_type in types]


class PrincipalRepository:
    """Postgres-backed principal persistence.

    Expects a ``principals`` table with a partial unique index on
    ``lower(username)`` for rows whose type is neither ``api`` nor ``system``,
    and an ``auth_audit_log`` table.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_by_username(
        self,
        username: str,
        *,
        exclude_types: Iterable[PrincipalType] = (),
    ) -> Principal | None:
        """Return the principal with ``username`` (case-insensitive) or ``None``."""
        return self._find_one(
            "lower(username) = lower(%s) AND NOT (type = ANY(%s))",
            (username, _type_values(exclude_types)),
        )

    def find_by_credentials(
        self,
        username: str,
        password_hash: str,
        *,
        types: Iterable[PrincipalType] | None = None,
        exclude_types: Iterable[PrincipalType] = (),
    ) -> Principal | None:
        """Return the principal matching username and password hash, optionally restricted by type."""
        clauses = ["lower(username) = lower(%s)", "password_hash = %s", "NOT (type = ANY(%s))"]
        params: list[Any] = [username, password_hash, _type_values(exclude_types)]
        if types is not None:
            clauses.append("type = ANY(%s)")
            params.append(_type_values(types))
        return self._find_one(" AND ".join(clauses), tuple(params))

    def get_principal(self, principal_id: str) -> Principal | None:
        """Fetch a principal by identifier or return ``None``."""
        return self._find_one("principal_id = %s", (principal_id,))

    def create_principal(self, payload: NewPrincipal, *, created_by: str | None) -> Principal:
        """Insert a principal and return it.

        When another writer created the same username first, the existing row is
        returned instead of failing.
        """
        principal_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO principals (
                            principal_id, username, type, created_at, first_name, last_name, title,
                            email_address, phone_number, teams_ids, default_team_id, portals_ids,
                            portal_roles_ids, created_by
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_PRINCIPAL_COLUMNS}
                        """,
                        (
                            principal_id,
                            payload.username,
                            payload.type.value,
                            now,
                            payload.first_name,
                            payload.last_name,
                            payload.title,
                            payload.email_address,
                            payload.phone_number,
                            Json(payload.teams_ids),
                            payload.default_team_id,
                            Json(payload.portals_ids),
                            Json(payload.portal_roles_ids),
                            created_by,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except pg_errors.UniqueViolation:
            logger.info("principal [%s] was created concurrently, reusing existing row", payload.username)
            existing = self.find_by_username(
                payload.username, exclude_types=(PrincipalType.api, PrincipalType.system)
            )
            if existing is None:
                raise
            return existing
        return self._map_record(row)

    def write_audit_event(
        self,
        *,
        principal_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry capturing authentication activity."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO auth_audit_log (principal_id, event_type, actor, metadata)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (principal_id, event_type, actor, Json(metadata or {})),
                )
                conn.commit()

    def _find_one(self, where_sql: str, params: tuple[Any, ...]) -> Principal | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_PRINCIPAL_COLUMNS} FROM principals WHERE {where_sql} LIMIT 1",
                    params,
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Principal:
        """Convert a raw database tuple into the domain ``Principal`` dataclass."""
        return Principal(
            principal_id=row[0],
            username=row[1],
            type=PrincipalType(row[2]),
            created_at=row[3],
            password_hash=row[4],
            first_name=row[5],
            last_name=row[6],
            title=row[7],
            email_address=row[8],
            phone_number=row[9],
            teams_ids=list(row[10] or []),
            default_team_id=row[11],
            portals_ids=list(row[12] or []),
            portal_roles_ids=list(row[13] or []),
            created_by=row[14],
        )
