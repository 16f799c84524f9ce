"""
Registry Configuration — Validated settings loaded from the environment.

Reads settings from environment variables:
    REGISTRY_OWNER = <principal administering the registry>
    REGISTRY_STORAGE_BACKEND = memory | postgres
    REGISTRY_DB_SCHEMA = <postgres schema name>
    REGISTRY_CASCADE_GRANTS = true | false
    REGISTRY_HIDE_ORPHANED_GRANTS = true | false
    REGISTRY_AUDIT = true | false
"""
import os
import re
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("secret_registry")

_SCHEMA_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def get_registry_owner() -> str:
    """Read the registry administrator principal from REGISTRY_OWNER.

    Returns:
        Administrator principal.

    Raises:
        RuntimeError: If REGISTRY_OWNER is not set or empty.
    """
    raw = os.environ.get("REGISTRY_OWNER", "").strip()
    if not raw:
        raise RuntimeError(
            "REGISTRY_OWNER environment variable is not set"
        )
    return raw


def env_flag(name: str, default: bool) -> bool:
    """Parse a boolean environment variable.

    Raises:
        ValueError: If the value is not a recognized boolean literal.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


class RegistryConfig(BaseModel):
    """Validated registry configuration."""

    registry_owner: str = Field(min_length=1)
    storage_backend: str = Field(default="memory")
    db_schema: str = Field(default="registry")
    cascade_grants: bool = False
    hide_orphaned_grants: bool = False
    audit: bool = True

    @field_validator("storage_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate storage backend is supported."""
        v = v.lower()
        if v not in ("memory", "postgres"):
            raise ValueError(f"Unsupported storage backend: {v}")
        return v

    @field_validator("db_schema")
    @classmethod
    def validate_schema(cls, v: str) -> str:
        """Schema names are interpolated into SQL, so only plain identifiers pass."""
        if not _SCHEMA_PATTERN.match(v):
            raise ValueError(f"Invalid schema name: {v!r}")
        return v

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        """Create RegistryConfig by loading values from environment.

        Returns:
            Populated RegistryConfig instance.
        """
        config = cls(
            registry_owner=get_registry_owner(),
            storage_backend=os.environ.get("REGISTRY_STORAGE_BACKEND", "memory"),
            db_schema=os.environ.get("REGISTRY_DB_SCHEMA", "registry"),
            cascade_grants=env_flag("REGISTRY_CASCADE_GRANTS", False),
            hide_orphaned_grants=env_flag("REGISTRY_HIDE_ORPHANED_GRANTS", False),
            audit=env_flag("REGISTRY_AUDIT", True),
        )
        logger.debug(
            "Loaded registry config: backend=%s schema=%s",
            config.storage_backend, config.db_schema,
        )
        return config
