"""
Storage contract for the registry tables.

A backend exposes one operation, :meth:`AbstractStorage.transaction`, which
yields a :class:`StorageTransaction` bound to a consistent view of the
secret, owner-counter and access-grant tables (plus the audit log). Writes
issued through a transaction are applied atomically: either the body
completes and every write is kept, or it raises and none are.
"""
from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional

from ..models import SecretRecord, AccessGrant, AuditEntry


class StorageTransaction(ABC):
    """Table operations available inside a single transaction."""

    # ------------------------------------------------------------------
    # Secret table
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_secret(self, secret_id: int) -> Optional[SecretRecord]:
        ...

    @abstractmethod
    async def insert_secret(self, record: SecretRecord) -> None:
        """Insert a new record; raises ``AlreadyExists`` if the slot is taken."""

    @abstractmethod
    async def delete_secret(self, secret_id: int) -> None:
        ...

    # ------------------------------------------------------------------
    # Owner counter table
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_counter(self, owner: str) -> int:
        """Last identifier issued to ``owner``, 0 if none."""

    @abstractmethod
    async def set_counter(self, owner: str, value: int) -> None:
        ...

    # ------------------------------------------------------------------
    # Access table
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_grant(
        self, secret_id: int, grantee: str
    ) -> Optional[AccessGrant]:
        ...

    @abstractmethod
    async def put_grant(self, grant: AccessGrant) -> None:
        """Insert or overwrite the grant keyed by (secret_id, grantee)."""

    @abstractmethod
    async def delete_grant(self, secret_id: int, grantee: str) -> None:
        """Remove a grant; missing grants are ignored."""

    @abstractmethod
    async def delete_grants(self, secret_id: int) -> int:
        """Remove every grant for ``secret_id``; returns how many were removed."""

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    @abstractmethod
    async def append_audit(self, entry: AuditEntry) -> None:
        ...

    @abstractmethod
    async def audit_entries(
        self, secret_id: Optional[int] = None
    ) -> list[AuditEntry]:
        ...


class AbstractStorage(ABC):
    """Backend holding the registry tables."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StorageTransaction]:
        ...
