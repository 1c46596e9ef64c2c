"""Database repository for clinic accounts and tenants."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Sequence

import psycopg
from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, Role, Tenant
from .domain.contracts import ProfileChange, SetAvatarUrl, SetFullName, SetPhone
from .domain.errors import AccountConflict, RepositoryError

_ACCOUNT_COLUMNS = "id::text, email, full_name, role, clinic_id::text, phone, avatar_url, created_at"

_PROFILE_COLUMNS: dict[type, str] = {
    SetFullName: "full_name",
    SetPhone: "phone",
    SetAvatarUrl: "avatar_url",
}


class PostgresAccountRepository:
    """Postgres-backed persistence for the ``users`` and ``clinics`` tables.

    Every method is a single statement in its own transaction. Account ids come
    from the identity authority; the primary key on ``users.id`` is what makes
    concurrent first-time inserts for the same identity collide.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_account_by_id(self, account_id: str) -> Account | None:
        """Fetch an account by its external identity id or return ``None``."""
        row = self._fetchone(
            f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = %s",
            (account_id,),
        )
        return self._map_account(row) if row else None

    def create_account(
        self,
        account_id: str,
        email: str,
        full_name: str,
        role: Role,
        tenant_id: str | None = None,
    ) -> Account:
        """Insert an account row; raise ``AccountConflict`` on a unique violation."""
        now = datetime.now(timezone.utc)
        row = self._execute_write(
            f"""
            INSERT INTO users (id, email, full_name, role, clinic_id, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_ACCOUNT_COLUMNS}
            """,
            (account_id, email, full_name, Role(role).value, tenant_id, now, now),
        )
        return self._map_account(row)

    def set_account_tenant(self, account_id: str, tenant_id: str) -> Account:
        """Attach ``tenant_id`` to an account that has no tenant yet.

        An account that already has a tenant keeps it; the stored row is
        returned unchanged so the caller can adopt the existing tenant.
        """
        row = self._execute_write(
            f"""
            UPDATE users SET clinic_id = %s, updated_at = NOW()
            WHERE id = %s AND clinic_id IS NULL
            RETURNING {_ACCOUNT_COLUMNS}
            """,
            (tenant_id, account_id),
        )
        if row is not None:
            return self._map_account(row)
        existing = self.find_account_by_id(account_id)
        if existing is None:
            raise RepositoryError(f"account {account_id} not found")
        return existing

    def create_tenant(self, name: str) -> Tenant:
        """Insert a clinic with a freshly generated id."""
        tenant_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        row = self._execute_write(
            """
            INSERT INTO clinics (id, name, created_at, updated_at)
            VALUES (%s, %s, %s, %s)
            RETURNING id::text, name, created_at
            """,
            (tenant_id, name, now, now),
        )
        return Tenant(tenant_id=row[0], name=row[1], created_at=row[2])

    def find_tenant_by_id(self, tenant_id: str) -> Tenant | None:
        row = self._fetchone(
            "SELECT id::text, name, created_at FROM clinics WHERE id = %s",
            (tenant_id,),
        )
        if not row:
            return None
        return Tenant(tenant_id=row[0], name=row[1], created_at=row[2])

    def update_account_profile(
        self, account_id: str, changes: Sequence[ProfileChange]
    ) -> Account | None:
        """Apply profile changes in one statement; ``None`` when the account is missing."""
        if not changes:
            return self.find_account_by_id(account_id)

        assignments: list[str] = []
        params: list[Any] = []
        for change in changes:
            assignments.append(f"{_PROFILE_COLUMNS[type(change)]} = %s")
            params.append(change.value)
        params.append(account_id)

        row = self._execute_write(
            f"""
            UPDATE users SET {", ".join(assignments)}, updated_at = NOW()
            WHERE id = %s
            RETURNING {_ACCOUNT_COLUMNS}
            """,
            params,
        )
        return self._map_account(row) if row else None

    def _fetchone(self, query: str, params: Sequence[Any]) -> tuple | None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    return cur.fetchone()
        except psycopg.Error as exc:
            raise RepositoryError(str(exc)) from exc

    def _execute_write(self, query: str, params: Sequence[Any]) -> tuple | None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise AccountConflict(str(exc)) from exc
        except psycopg.Error as exc:
            raise RepositoryError(str(exc)) from exc
        return row

    def _map_account(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            full_name=row[2],
            role=Role(row[3]),
            tenant_id=row[4],
            phone=row[5],
            avatar_url=row[6],
            created_at=row[7],
        )
