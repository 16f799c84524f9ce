"""
PostgreSQL storage backend over an asyncpg-compatible connection pool.

Each registry transaction acquires one connection and runs inside a single
database transaction: commit when the body completes, rollback when it
raises. Every transaction first takes a transaction-scoped advisory lock
keyed on the schema, so registries sharing one database are serialized the
same way a single registry serializes its own calls.

Security Note:
    Payload and salt are stored as BYTEA exactly as supplied. Never log
    their values; only identifiers and principals.
"""
import zlib
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from ..exceptions import AlreadyExists
from ..models import SecretRecord, AccessGrant, AuditEntry
from .abstract import AbstractStorage, StorageTransaction

logger = logging.getLogger("secret_registry")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_ADVISORY_LOCK = """
SELECT pg_advisory_xact_lock($1)
"""

_CREATE_SCHEMA = """
CREATE SCHEMA IF NOT EXISTS {schema};

CREATE TABLE IF NOT EXISTS {schema}.secrets (
    id BIGINT PRIMARY KEY CHECK (id > 0),
    owner TEXT NOT NULL,
    payload BYTEA NOT NULL,
    salt BYTEA NOT NULL,
    created_at BIGINT NOT NULL,
    expires_at BIGINT NULL
);

CREATE TABLE IF NOT EXISTS {schema}.owner_counters (
    owner TEXT PRIMARY KEY,
    last_id BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS {schema}.access_grants (
    secret_id BIGINT NOT NULL,
    grantee TEXT NOT NULL,
    granted_at BIGINT NOT NULL,
    granted_by TEXT NOT NULL,
    PRIMARY KEY (secret_id, grantee)
);

CREATE TABLE IF NOT EXISTS {schema}.audit_log (
    seq BIGSERIAL PRIMARY KEY,
    operation TEXT NOT NULL,
    secret_id BIGINT NOT NULL,
    principal TEXT NOT NULL,
    height BIGINT NOT NULL,
    target TEXT NULL
);
"""

_SELECT_SECRET = """
SELECT id, owner, payload, salt, created_at, expires_at
FROM {schema}.secrets
WHERE id = $1
"""

_INSERT_SECRET = """
INSERT INTO {schema}.secrets (id, owner, payload, salt, created_at, expires_at)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (id) DO NOTHING
"""

_DELETE_SECRET = """
DELETE FROM {schema}.secrets WHERE id = $1
"""

_SELECT_COUNTER = """
SELECT last_id FROM {schema}.owner_counters WHERE owner = $1
"""

_UPSERT_COUNTER = """
INSERT INTO {schema}.owner_counters (owner, last_id)
VALUES ($1, $2)
ON CONFLICT (owner) DO UPDATE SET last_id = EXCLUDED.last_id
"""

_SELECT_GRANT = """
SELECT secret_id, grantee, granted_at, granted_by
FROM {schema}.access_grants
WHERE secret_id = $1 AND grantee = $2
"""

_UPSERT_GRANT = """
INSERT INTO {schema}.access_grants (secret_id, grantee, granted_at, granted_by)
VALUES ($1, $2, $3, $4)
ON CONFLICT (secret_id, grantee)
DO UPDATE SET granted_at = EXCLUDED.granted_at,
              granted_by = EXCLUDED.granted_by
"""

_DELETE_GRANT = """
DELETE FROM {schema}.access_grants WHERE secret_id = $1 AND grantee = $2
"""

_DELETE_GRANTS = """
DELETE FROM {schema}.access_grants WHERE secret_id = $1
"""

_INSERT_AUDIT = """
INSERT INTO {schema}.audit_log (operation, secret_id, principal, height, target)
VALUES ($1, $2, $3, $4, $5)
"""

_SELECT_AUDIT = """
SELECT operation, secret_id, principal, height, target
FROM {schema}.audit_log
ORDER BY seq
"""

_SELECT_AUDIT_FOR_SECRET = """
SELECT operation, secret_id, principal, height, target
FROM {schema}.audit_log
WHERE secret_id = $1
ORDER BY seq
"""


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``'DELETE 3'``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PostgresTransaction(StorageTransaction):
    """Table operations bound to one connection inside a transaction."""

    def __init__(self, conn: Any, sql: dict[str, str]):
        self._conn = conn
        self._sql = sql

    async def get_secret(self, secret_id: int) -> Optional[SecretRecord]:
        row = await self._conn.fetchrow(self._sql["select_secret"], secret_id)
        if row is None:
            return None
        return SecretRecord(
            id=row["id"],
            owner=row["owner"],
            payload=bytes(row["payload"]),
            salt=bytes(row["salt"]),
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )

    async def insert_secret(self, record: SecretRecord) -> None:
        status = await self._conn.execute(
            self._sql["insert_secret"],
            record.id, record.owner, record.payload, record.salt,
            record.created_at, record.expires_at,
        )
        if _affected(status) != 1:
            raise AlreadyExists(
                f"Secret slot {record.id} is already occupied",
                secret_id=record.id,
            )

    async def delete_secret(self, secret_id: int) -> None:
        await self._conn.execute(self._sql["delete_secret"], secret_id)

    async def get_counter(self, owner: str) -> int:
        value = await self._conn.fetchval(self._sql["select_counter"], owner)
        return value or 0

    async def set_counter(self, owner: str, value: int) -> None:
        await self._conn.execute(self._sql["upsert_counter"], owner, value)

    async def get_grant(
        self, secret_id: int, grantee: str
    ) -> Optional[AccessGrant]:
        row = await self._conn.fetchrow(
            self._sql["select_grant"], secret_id, grantee,
        )
        if row is None:
            return None
        return AccessGrant(
            secret_id=row["secret_id"],
            grantee=row["grantee"],
            granted_at=row["granted_at"],
            granted_by=row["granted_by"],
        )

    async def put_grant(self, grant: AccessGrant) -> None:
        await self._conn.execute(
            self._sql["upsert_grant"],
            grant.secret_id, grant.grantee, grant.granted_at, grant.granted_by,
        )

    async def delete_grant(self, secret_id: int, grantee: str) -> None:
        await self._conn.execute(self._sql["delete_grant"], secret_id, grantee)

    async def delete_grants(self, secret_id: int) -> int:
        status = await self._conn.execute(self._sql["delete_grants"], secret_id)
        return _affected(status)

    async def append_audit(self, entry: AuditEntry) -> None:
        await self._conn.execute(
            self._sql["insert_audit"],
            entry.operation, entry.secret_id, entry.principal,
            entry.height, entry.target,
        )

    async def audit_entries(
        self, secret_id: Optional[int] = None
    ) -> list[AuditEntry]:
        if secret_id is None:
            rows = await self._conn.fetch(self._sql["select_audit"])
        else:
            rows = await self._conn.fetch(
                self._sql["select_audit_for_secret"], secret_id,
            )
        return [
            AuditEntry(
                operation=row["operation"],
                secret_id=row["secret_id"],
                principal=row["principal"],
                height=row["height"],
                target=row["target"],
            )
            for row in rows
        ]


class PostgresStorage(AbstractStorage):
    """Registry tables stored in PostgreSQL.

    Args:
        db_pool: asyncpg-compatible connection pool.
        schema: Schema holding the registry tables. Must be a plain
            identifier; it is interpolated into the SQL statements.
    """

    def __init__(self, db_pool: Any, schema: str = "registry"):
        self._db = db_pool
        self._schema = schema
        statements = {
            "select_secret": _SELECT_SECRET,
            "insert_secret": _INSERT_SECRET,
            "delete_secret": _DELETE_SECRET,
            "select_counter": _SELECT_COUNTER,
            "upsert_counter": _UPSERT_COUNTER,
            "select_grant": _SELECT_GRANT,
            "upsert_grant": _UPSERT_GRANT,
            "delete_grant": _DELETE_GRANT,
            "delete_grants": _DELETE_GRANTS,
            "insert_audit": _INSERT_AUDIT,
            "select_audit": _SELECT_AUDIT,
            "select_audit_for_secret": _SELECT_AUDIT_FOR_SECRET,
        }
        self._sql = {
            name: sql.format(schema=schema) for name, sql in statements.items()
        }
        self._lock_key = zlib.crc32(f"secret_registry:{schema}".encode("utf-8"))

    @property
    def schema(self) -> str:
        return self._schema

    async def create_schema(self) -> None:
        """Create the registry schema and tables if they do not exist."""
        async with self._db.acquire() as conn:
            await conn.execute(_CREATE_SCHEMA.format(schema=self._schema))
        logger.info("Registry schema ready: %s", self._schema)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresTransaction]:
        async with self._db.acquire() as conn:
            tx = conn.transaction()
            await tx.start()
            try:
                await conn.execute(_ADVISORY_LOCK, self._lock_key)
                yield PostgresTransaction(conn, self._sql)
            except BaseException:
                await tx.rollback()
                raise
            else:
                await tx.commit()
