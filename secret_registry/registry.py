"""
SecretRegistry — Ownership and access control for pre-encrypted secrets.

Provides the public API for the Secret Registry:
- ``store()`` / ``store_with_expiration()`` — mint an identifier and keep a record
- ``get_secret()`` — return a record to its owner or a grantee
- ``delete_secret()`` — owner-only removal, expired or not
- ``grant_access()`` / ``revoke_access()`` — manage per-record readers
- ``cleanup_expired()`` — anyone may remove an expired record
- ``owns_secret()`` / ``has_access()`` / ``is_expired()`` / ``access_info()``
  / ``owner_secret_count()`` / ``registry_owner()`` — read-only queries

Every operation runs under a single lock and inside one storage
transaction; all validation happens before the first write, so a rejected
call leaves the tables unchanged.

Security Note:
    The registry never sees plaintext. Never log payload or salt bytes,
    only identifiers and principals.
"""
import asyncio
import logging
from typing import Any, Optional

from .conf import RegistryConfig
from .exceptions import (
    RegistryError,
    NotOwner,
    SecretNotFound,
    AlreadyExists,
    NotAuthorized,
    SecretExpired,
    SecretNotExpired,
    InvalidExpiration,
    InvalidData,
)
from .models import (
    MAX_PAYLOAD_SIZE,
    SALT_SIZE,
    AccessGrant,
    AuditEntry,
    CallContext,
    SecretRecord,
)
from .storage import AbstractStorage, MemoryStorage, PostgresStorage
from .storage.abstract import StorageTransaction

logger = logging.getLogger("secret_registry")


def _rejected(err: RegistryError, ctx: Optional[CallContext] = None) -> RegistryError:
    logger.debug(
        "Registry rejected: kind=%s id=%s caller=%s",
        err.kind, err.secret_id, ctx.caller if ctx else None,
    )
    return err


class SecretRegistry:
    """Registry of secret records, owner counters and access grants.

    Identifiers are minted per owner (``last issued + 1``) but share one
    numeric space; the insert-time occupancy check is what keeps them
    unique, and it rejects a colliding store with ``AlreadyExists``.
    """

    def __init__(
        self,
        config: RegistryConfig,
        storage: Optional[AbstractStorage] = None,
    ):
        self._config = config
        self._storage = storage if storage is not None else MemoryStorage()
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f'<SecretRegistry owner={self._config.registry_owner!r} '
            f'storage={self._storage!r}>'
        )

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def storage(self) -> AbstractStorage:
        return self._storage

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_id(secret_id: int, ctx: Optional[CallContext] = None) -> None:
        if secret_id <= 0:
            raise _rejected(
                InvalidData("Secret id must be positive", secret_id=secret_id),
                ctx,
            )

    @staticmethod
    def _check_data(payload: bytes, salt: bytes, ctx: CallContext) -> None:
        if not payload:
            raise _rejected(InvalidData("Payload cannot be empty"), ctx)
        if len(payload) > MAX_PAYLOAD_SIZE:
            raise _rejected(
                InvalidData(
                    f"Payload cannot exceed {MAX_PAYLOAD_SIZE} bytes, "
                    f"got {len(payload)}"
                ),
                ctx,
            )
        if len(salt) != SALT_SIZE:
            raise _rejected(
                InvalidData(
                    f"Salt must be exactly {SALT_SIZE} bytes, got {len(salt)}"
                ),
                ctx,
            )

    async def _require(
        self,
        tx: StorageTransaction,
        secret_id: int,
        ctx: Optional[CallContext] = None,
    ) -> SecretRecord:
        record = await tx.get_secret(secret_id)
        if record is None:
            raise _rejected(
                SecretNotFound(f"Secret {secret_id} not found", secret_id=secret_id),
                ctx,
            )
        return record

    async def _audit(
        self,
        tx: StorageTransaction,
        operation: str,
        secret_id: int,
        ctx: CallContext,
        target: Optional[str] = None,
    ) -> None:
        if self._config.audit:
            await tx.append_audit(
                AuditEntry(
                    operation=operation,
                    secret_id=secret_id,
                    principal=ctx.caller,
                    height=ctx.height,
                    target=target,
                )
            )

    async def _drop_record(
        self, tx: StorageTransaction, secret_id: int
    ) -> None:
        await tx.delete_secret(secret_id)
        if self._config.cascade_grants:
            removed = await tx.delete_grants(secret_id)
            if removed:
                logger.debug(
                    "Registry cascade: id=%s removed %d grant(s)",
                    secret_id, removed,
                )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def _create(
        self,
        ctx: CallContext,
        payload: bytes,
        salt: bytes,
        expires_at: Optional[int],
    ) -> int:
        self._check_data(payload, salt, ctx)
        if expires_at is not None and expires_at <= ctx.height:
            raise _rejected(
                InvalidExpiration(
                    f"Expiration {expires_at} must be after height {ctx.height}"
                ),
                ctx,
            )
        async with self._lock:
            async with self._storage.transaction() as tx:
                secret_id = await tx.get_counter(ctx.caller) + 1
                if await tx.get_secret(secret_id) is not None:
                    raise _rejected(
                        AlreadyExists(
                            f"Secret slot {secret_id} is already occupied",
                            secret_id=secret_id,
                        ),
                        ctx,
                    )
                record = SecretRecord(
                    id=secret_id,
                    owner=ctx.caller,
                    payload=bytes(payload),
                    salt=bytes(salt),
                    created_at=ctx.height,
                    expires_at=expires_at,
                )
                await tx.insert_secret(record)
                await tx.set_counter(ctx.caller, secret_id)
                await self._audit(tx, "store", secret_id, ctx)
        logger.debug(
            "Registry store: id=%s owner=%s expires_at=%s",
            secret_id, ctx.caller, expires_at,
        )
        return secret_id

    async def store(self, ctx: CallContext, payload: bytes, salt: bytes) -> int:
        """Store a pre-encrypted secret owned by the caller.

        Args:
            ctx: Caller and current height.
            payload: Encrypted payload, 1 to 1024 bytes.
            salt: Exactly 32 bytes, used only by off-registry decryption.

        Returns:
            The new secret identifier.

        Raises:
            InvalidData: If payload or salt has an invalid length.
            AlreadyExists: If the minted identifier is already taken.
        """
        return await self._create(ctx, payload, salt, None)

    async def store_with_expiration(
        self,
        ctx: CallContext,
        payload: bytes,
        salt: bytes,
        expires_at: int,
    ) -> int:
        """Store a secret that expires once the height reaches ``expires_at``.

        Raises:
            InvalidData: If payload or salt has an invalid length.
            InvalidExpiration: If ``expires_at`` is not after the current height.
            AlreadyExists: If the minted identifier is already taken.
        """
        return await self._create(ctx, payload, salt, expires_at)

    # ------------------------------------------------------------------
    # Reads and removal
    # ------------------------------------------------------------------

    async def get_secret(self, ctx: CallContext, secret_id: int) -> SecretRecord:
        """Return the full record to its owner or a grantee.

        Checks run in order: identifier, existence, expiry, authorization.

        Raises:
            InvalidData: If ``secret_id`` is not positive.
            SecretNotFound: If no record exists.
            SecretExpired: If the record has expired.
            NotAuthorized: If the caller is neither owner nor grantee.
        """
        self._check_id(secret_id, ctx)
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await self._require(tx, secret_id, ctx)
                if record.is_expired(ctx.height):
                    raise _rejected(
                        SecretExpired(
                            f"Secret {secret_id} has expired", secret_id=secret_id
                        ),
                        ctx,
                    )
                if record.owner != ctx.caller:
                    grant = await tx.get_grant(secret_id, ctx.caller)
                    if grant is None:
                        raise _rejected(
                            NotAuthorized(
                                f"Not authorized to read secret {secret_id}",
                                secret_id=secret_id,
                            ),
                            ctx,
                        )
        return record

    async def delete_secret(self, ctx: CallContext, secret_id: int) -> None:
        """Remove a record. Only the owner may delete, at any time.

        Raises:
            InvalidData: If ``secret_id`` is not positive.
            SecretNotFound: If no record exists.
            NotOwner: If the caller does not own the record.
        """
        self._check_id(secret_id, ctx)
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await self._require(tx, secret_id, ctx)
                if record.owner != ctx.caller:
                    raise _rejected(
                        NotOwner(
                            f"Only the owner may delete secret {secret_id}",
                            secret_id=secret_id,
                        ),
                        ctx,
                    )
                await self._drop_record(tx, secret_id)
                await self._audit(tx, "delete", secret_id, ctx)
        logger.debug("Registry delete: id=%s owner=%s", secret_id, ctx.caller)

    async def cleanup_expired(self, ctx: CallContext, secret_id: int) -> None:
        """Remove an expired record. Any caller may do this.

        Raises:
            InvalidData: If ``secret_id`` is not positive.
            SecretNotFound: If no record exists.
            SecretNotExpired: If the record has not expired yet (same code
                as ``SecretExpired``).
        """
        self._check_id(secret_id, ctx)
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await self._require(tx, secret_id, ctx)
                if not record.is_expired(ctx.height):
                    raise _rejected(
                        SecretNotExpired(
                            f"Secret {secret_id} has not expired yet",
                            secret_id=secret_id,
                        ),
                        ctx,
                    )
                await self._drop_record(tx, secret_id)
                await self._audit(tx, "cleanup", secret_id, ctx)
        logger.debug(
            "Registry cleanup: id=%s owner=%s by=%s",
            secret_id, record.owner, ctx.caller,
        )

    # ------------------------------------------------------------------
    # Access grants
    # ------------------------------------------------------------------

    async def _owned_record(
        self,
        tx: StorageTransaction,
        ctx: CallContext,
        secret_id: int,
        grantee: str,
    ) -> SecretRecord:
        record = await self._require(tx, secret_id, ctx)
        if not grantee:
            raise _rejected(
                InvalidData("Grantee cannot be empty", secret_id=secret_id),
                ctx,
            )
        if grantee == ctx.caller:
            raise _rejected(
                InvalidData(
                    "Cannot grant or revoke access to yourself",
                    secret_id=secret_id,
                ),
                ctx,
            )
        if record.owner != ctx.caller:
            raise _rejected(
                NotOwner(
                    f"Only the owner may manage access to secret {secret_id}",
                    secret_id=secret_id,
                ),
                ctx,
            )
        return record

    async def grant_access(
        self, ctx: CallContext, secret_id: int, grantee: str
    ) -> None:
        """Allow ``grantee`` to read the caller's secret.

        An existing grant for the same grantee is overwritten.

        Raises:
            InvalidData: If ``secret_id`` is not positive or grantee is the caller.
            SecretNotFound: If no record exists.
            NotOwner: If the caller does not own the record.
            SecretExpired: If the record has expired.
        """
        self._check_id(secret_id, ctx)
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await self._owned_record(tx, ctx, secret_id, grantee)
                if record.is_expired(ctx.height):
                    raise _rejected(
                        SecretExpired(
                            f"Cannot grant access to expired secret {secret_id}",
                            secret_id=secret_id,
                        ),
                        ctx,
                    )
                await tx.put_grant(
                    AccessGrant(
                        secret_id=secret_id,
                        grantee=grantee,
                        granted_at=ctx.height,
                        granted_by=ctx.caller,
                    )
                )
                await self._audit(tx, "grant", secret_id, ctx, target=grantee)
        logger.debug(
            "Registry grant: id=%s owner=%s grantee=%s",
            secret_id, ctx.caller, grantee,
        )

    async def revoke_access(
        self, ctx: CallContext, secret_id: int, grantee: str
    ) -> None:
        """Remove ``grantee``'s access. Idempotent, allowed after expiry.

        Raises:
            InvalidData: If ``secret_id`` is not positive or grantee is the caller.
            SecretNotFound: If no record exists.
            NotOwner: If the caller does not own the record.
        """
        self._check_id(secret_id, ctx)
        async with self._lock:
            async with self._storage.transaction() as tx:
                await self._owned_record(tx, ctx, secret_id, grantee)
                await tx.delete_grant(secret_id, grantee)
                await self._audit(tx, "revoke", secret_id, ctx, target=grantee)
        logger.debug(
            "Registry revoke: id=%s owner=%s grantee=%s",
            secret_id, ctx.caller, grantee,
        )

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    async def owns_secret(self, user: str, secret_id: int) -> bool:
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await tx.get_secret(secret_id)
        return record is not None and record.owner == user

    async def has_access(self, user: str, secret_id: int) -> bool:
        """True if ``user`` owns the record or holds a grant for it.

        Expiry is not considered; a missing record yields False.
        """
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await tx.get_secret(secret_id)
                if record is None:
                    return False
                if record.owner == user:
                    return True
                return await tx.get_grant(secret_id, user) is not None

    async def is_expired(self, ctx: CallContext, secret_id: int) -> bool:
        async with self._lock:
            async with self._storage.transaction() as tx:
                record = await tx.get_secret(secret_id)
        return record is not None and record.is_expired(ctx.height)

    async def access_info(
        self, secret_id: int, user: str
    ) -> Optional[AccessGrant]:
        """Return the grant for (secret_id, user), or None.

        Grants outlive deleted records; with ``hide_orphaned_grants`` set,
        a grant whose record is gone is reported as absent.
        """
        async with self._lock:
            async with self._storage.transaction() as tx:
                grant = await tx.get_grant(secret_id, user)
                if (
                    grant is not None
                    and self._config.hide_orphaned_grants
                    and await tx.get_secret(secret_id) is None
                ):
                    return None
        return grant

    async def owner_secret_count(self, user: str) -> int:
        """Number of secrets ``user`` has ever created (deletions included)."""
        async with self._lock:
            async with self._storage.transaction() as tx:
                return await tx.get_counter(user)

    def registry_owner(self) -> str:
        """Principal administering the registry.

        Not consulted by any access decision.
        """
        return self._config.registry_owner

    def is_registry_owner(self, principal: str) -> bool:
        return principal == self._config.registry_owner

    async def audit_trail(
        self, secret_id: Optional[int] = None
    ) -> list[AuditEntry]:
        """Successful mutations in the order they happened."""
        async with self._lock:
            async with self._storage.transaction() as tx:
                return await tx.audit_entries(secret_id)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    async def from_config(
        cls,
        config: RegistryConfig,
        db_pool: Any = None,
    ) -> "SecretRegistry":
        """Build a registry with the storage backend named in ``config``.

        Args:
            config: Validated registry configuration.
            db_pool: asyncpg-compatible connection pool, required by the
                ``postgres`` backend.

        Returns:
            Ready SecretRegistry instance.

        Raises:
            RuntimeError: If the postgres backend is selected without a pool.
        """
        if config.storage_backend == "postgres":
            if db_pool is None:
                raise RuntimeError(
                    "The postgres storage backend requires a db_pool"
                )
            storage = PostgresStorage(db_pool, schema=config.db_schema)
            await storage.create_schema()
        else:
            storage = MemoryStorage()
        registry = cls(config, storage)
        logger.info(
            "Secret registry ready: backend=%s owner=%s",
            config.storage_backend, config.registry_owner,
        )
        return registry
