"""Secret Registry — Ownership and access control for pre-encrypted secrets.

Security Note (Threat Model):
    Payloads reach the registry already encrypted; the registry never holds
    plaintext or keys. Anyone able to read the backing store sees ciphertext
    and salts only. Decryption happens entirely outside this package.
"""

from .version import __version__
from .registry import SecretRegistry
from .environment import Environment
from .conf import RegistryConfig
from .models import (
    CallContext,
    SecretRecord,
    AccessGrant,
    AuditEntry,
    MAX_PAYLOAD_SIZE,
    SALT_SIZE,
)
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
from .storage import MemoryStorage, PostgresStorage

__all__ = [
    "__version__",
    "SecretRegistry",
    "Environment",
    "RegistryConfig",
    "CallContext",
    "SecretRecord",
    "AccessGrant",
    "AuditEntry",
    "MAX_PAYLOAD_SIZE",
    "SALT_SIZE",
    "RegistryError",
    "NotOwner",
    "SecretNotFound",
    "AlreadyExists",
    "NotAuthorized",
    "SecretExpired",
    "SecretNotExpired",
    "InvalidExpiration",
    "InvalidData",
    "MemoryStorage",
    "PostgresStorage",
]
