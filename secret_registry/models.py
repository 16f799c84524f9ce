"""
Registry Models — Secret records, access grants and call contexts.

Security Note:
    ``SecretRecord.payload`` and ``SecretRecord.salt`` are opaque,
    caller-encrypted bytes. Their ``repr`` only reports lengths so records
    can be logged safely by identifier.
"""
from typing import Optional

from pydantic import BaseModel, Field

MAX_PAYLOAD_SIZE = 1024
SALT_SIZE = 32


class CallContext(BaseModel):
    """Per-call values supplied by the hosting environment."""

    caller: str = Field(min_length=1)
    height: int = Field(ge=0)

    model_config = {"frozen": True}


class SecretRecord(BaseModel):
    """A stored secret: owner, encrypted payload and timing metadata."""

    id: int = Field(gt=0)
    owner: str
    payload: bytes
    salt: bytes
    created_at: int = Field(ge=0)
    expires_at: Optional[int] = None

    model_config = {"frozen": True}

    def is_expired(self, height: int) -> bool:
        """A record expires once the height reaches ``expires_at``."""
        return self.expires_at is not None and height >= self.expires_at

    def __repr__(self) -> str:
        return (
            f'<SecretRecord id={self.id} owner={self.owner!r} '
            f'payload={len(self.payload)}B salt={len(self.salt)}B '
            f'created_at={self.created_at} expires_at={self.expires_at}>'
        )


class AccessGrant(BaseModel):
    """Permission for ``grantee`` to read secret ``secret_id``."""

    secret_id: int = Field(gt=0)
    grantee: str
    granted_at: int = Field(ge=0)
    granted_by: str

    model_config = {"frozen": True}


class AuditEntry(BaseModel):
    """One successful mutation, recorded without payload data."""

    operation: str
    secret_id: int
    principal: str
    height: int
    target: Optional[str] = None

    model_config = {"frozen": True}
