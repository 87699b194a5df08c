"""Database repositories for accounts and catalogue documents."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.errors import ConflictError, StoreError

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    name TEXT NOT NULL,
    failed_login_attempts INTEGER NOT NULL DEFAULT 0 CHECK (failed_login_attempts >= 0),
    lock_until TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    document_id TEXT NOT NULL,
    data JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (collection, document_id)
);
"""

_ACCOUNT_COLUMNS = (
    "account_id, email, password_hash, name, "
    "failed_login_attempts, lock_until, created_at, updated_at"
)


def ensure_schema(pool: ConnectionPool) -> None:
    """Create the tables used by the service when they do not exist yet."""
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()


class AccountRepository:
    """Postgres-backed account persistence."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_account(self, *, email: str, password_hash: str, name: str) -> Account:
        """Insert a new account; a duplicate email raises ``ConflictError``."""
        now = datetime.now(timezone.utc)
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                        VALUES (%s, %s, %s, %s, 0, NULL, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (str(uuid.uuid4()), email, password_hash, name, now, now),
                    )
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise ConflictError("User already exists.") from exc
        return self._map_record(row)

    def find_by_email(self, email: str) -> Account | None:
        """Return the account registered under ``email`` (already normalised) or ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = %s",
                    (email,),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def save_lockout_state(self, account: Account) -> Account:
        """Write back the attempt counter and lock expiry of ``account``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET failed_login_attempts = %s, lock_until = %s, updated_at = NOW()
                    WHERE account_id = %s
                    RETURNING updated_at
                    """,
                    (account.failed_login_attempts, account.lock_until, account.id),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise StoreError(f"account {account.id} disappeared during update")
        account.updated_at = row[0]
        return account

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            id=row[0],
            email=row[1],
            password_hash=row[2],
            name=row[3],
            failed_login_attempts=row[4],
            lock_until=row[5],
            created_at=row[6],
            updated_at=row[7],
        )


class DocumentRepository:
    """JSON document collection stored in the shared ``documents`` table."""

    def __init__(self, pool: ConnectionPool, collection: str) -> None:
        self._pool = pool
        self._collection = collection

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        document_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    INSERT INTO documents (collection, document_id, data, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING document_id, data, created_at, updated_at
                    """,
                    (self._collection, document_id, Jsonb(data), now, now),
                )
                row = cur.fetchone()
            conn.commit()
        return self._map_document(row)

    def list_all(self) -> list[dict[str, Any]]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, data, created_at, updated_at
                    FROM documents
                    WHERE collection = %s
                    ORDER BY created_at, document_id
                    """,
                    (self._collection,),
                )
                rows = cur.fetchall()
        return [self._map_document(row) for row in rows]

    def get(self, document_id: str) -> dict[str, Any] | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, data, created_at, updated_at
                    FROM documents
                    WHERE collection = %s AND document_id = %s
                    """,
                    (self._collection, document_id),
                )
                row = cur.fetchone()
        return self._map_document(row) if row else None

    def update(self, document_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
        """Merge ``data`` into the stored document's top-level fields."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET data = data || %s, updated_at = NOW()
                    WHERE collection = %s AND document_id = %s
                    RETURNING document_id, data, created_at, updated_at
                    """,
                    (Jsonb(data), self._collection, document_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._map_document(row) if row else None

    def delete(self, document_id: str) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM documents WHERE collection = %s AND document_id = %s",
                    (self._collection, document_id),
                )
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def _map_document(self, row: tuple) -> dict[str, Any]:
        document = dict(row[1] or {})
        document.update(
            id=row[0],
            createdAt=row[2].isoformat(),
            updatedAt=row[3].isoformat(),
        )
        return document
