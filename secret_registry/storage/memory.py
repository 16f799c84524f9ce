"""
In-memory storage backend.

Tables are plain dicts; records and grants are frozen models, so a
transaction snapshot only needs shallow copies. The snapshot is taken on
the first write, so read-only transactions copy nothing. ``snapshot()`` and
``restore()`` persist the tables through orjson.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from ..exceptions import AlreadyExists
from ..models import SecretRecord, AccessGrant, AuditEntry
from ..serialization import serialize_value, deserialize_value
from .abstract import AbstractStorage, StorageTransaction

logger = logging.getLogger("secret_registry")

_SNAPSHOT_VERSION = 1


class MemoryTransaction(StorageTransaction):
    """Direct view over the tables of a :class:`MemoryStorage`."""

    def __init__(self, storage: "MemoryStorage"):
        self._s = storage
        self._saved: Optional[tuple] = None

    def _before_write(self) -> None:
        if self._saved is None:
            s = self._s
            self._saved = (
                dict(s._secrets),
                dict(s._counters),
                dict(s._grants),
                len(s._audit),
            )

    def rollback(self) -> None:
        """Restore the tables as they were before the first write."""
        if self._saved is None:
            return
        s = self._s
        s._secrets, s._counters, s._grants = self._saved[:3]
        del s._audit[self._saved[3]:]
        self._saved = None

    async def get_secret(self, secret_id: int) -> Optional[SecretRecord]:
        return self._s._secrets.get(secret_id)

    async def insert_secret(self, record: SecretRecord) -> None:
        if record.id in self._s._secrets:
            raise AlreadyExists(
                f"Secret slot {record.id} is already occupied",
                secret_id=record.id,
            )
        self._before_write()
        self._s._secrets[record.id] = record

    async def delete_secret(self, secret_id: int) -> None:
        self._before_write()
        self._s._secrets.pop(secret_id, None)

    async def get_counter(self, owner: str) -> int:
        return self._s._counters.get(owner, 0)

    async def set_counter(self, owner: str, value: int) -> None:
        self._before_write()
        self._s._counters[owner] = value

    async def get_grant(
        self, secret_id: int, grantee: str
    ) -> Optional[AccessGrant]:
        return self._s._grants.get((secret_id, grantee))

    async def put_grant(self, grant: AccessGrant) -> None:
        self._before_write()
        self._s._grants[(grant.secret_id, grant.grantee)] = grant

    async def delete_grant(self, secret_id: int, grantee: str) -> None:
        self._before_write()
        self._s._grants.pop((secret_id, grantee), None)

    async def delete_grants(self, secret_id: int) -> int:
        self._before_write()
        keys = [key for key in self._s._grants if key[0] == secret_id]
        for key in keys:
            del self._s._grants[key]
        return len(keys)

    async def append_audit(self, entry: AuditEntry) -> None:
        self._before_write()
        self._s._audit.append(entry)

    async def audit_entries(
        self, secret_id: Optional[int] = None
    ) -> list[AuditEntry]:
        if secret_id is None:
            return list(self._s._audit)
        return [e for e in self._s._audit if e.secret_id == secret_id]


class MemoryStorage(AbstractStorage):
    """Process-local tables guarded by snapshot/rollback transactions."""

    transaction_class = MemoryTransaction

    def __init__(self) -> None:
        self._secrets: dict[int, SecretRecord] = {}
        self._counters: dict[str, int] = {}
        self._grants: dict[tuple[int, str], AccessGrant] = {}
        self._audit: list[AuditEntry] = []

    def __repr__(self) -> str:
        return (
            f'<MemoryStorage secrets={len(self._secrets)} '
            f'grants={len(self._grants)} owners={len(self._counters)}>'
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        tx = self.transaction_class(self)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _state(self) -> dict[str, Any]:
        return {
            "version": _SNAPSHOT_VERSION,
            "secrets": [r.model_dump() for r in self._secrets.values()],
            "counters": dict(self._counters),
            "grants": [g.model_dump() for g in self._grants.values()],
            "audit": [e.model_dump() for e in self._audit],
        }

    def snapshot(self) -> bytes:
        """Encode all tables as an orjson document.

        Returns:
            Snapshot bytes accepted by :meth:`restore`.
        """
        return serialize_value(self._state())

    @classmethod
    def restore(cls, data: bytes) -> "MemoryStorage":
        """Build a storage from :meth:`snapshot` output.

        Raises:
            ValueError: If the snapshot version is not supported.
        """
        state = deserialize_value(data)
        version = state.get("version")
        if version != _SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {version}")
        storage = cls()
        for row in state["secrets"]:
            record = SecretRecord(**row)
            storage._secrets[record.id] = record
        storage._counters.update(state["counters"])
        for row in state["grants"]:
            grant = AccessGrant(**row)
            storage._grants[(grant.secret_id, grant.grantee)] = grant
        storage._audit.extend(AuditEntry(**row) for row in state["audit"])
        logger.info(
            "Registry storage restored: %d secret(s), %d grant(s)",
            len(storage._secrets), len(storage._grants),
        )
        return storage
