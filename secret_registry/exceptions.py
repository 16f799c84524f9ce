"""Registry failure kinds.

Every failure is a business-rule rejection raised before any mutation.
Each kind carries a stable numeric ``code`` so hosting layers can translate
it into their own wire format.
"""
from typing import Any, Optional


class RegistryError(Exception):
    """Base error for the Secret Registry."""

    code: int = 0
    kind: str = "RegistryError"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        secret_id: Optional[int] = None,
    ) -> None:
        self.secret_id = secret_id
        super().__init__(message or self.kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": str(self),
            "secret_id": self.secret_id,
        }


class NotOwner(RegistryError):
    """Caller is not the record's owner where ownership is required."""

    code = 100
    kind = "NotOwner"


class SecretNotFound(RegistryError):
    """Referenced identifier has no record."""

    code = 101
    kind = "SecretNotFound"


class AlreadyExists(RegistryError):
    """Identifier slot is already occupied."""

    code = 102
    kind = "AlreadyExists"


class NotAuthorized(RegistryError):
    """Caller is neither owner nor grantee on a read."""

    code = 103
    kind = "NotAuthorized"


class SecretExpired(RegistryError):
    """Operation requires a record that has not expired."""

    code = 104
    kind = "SecretExpired"


class SecretNotExpired(SecretExpired):
    """Cleanup was requested for a record that has not expired yet.

    Shares the ``SecretExpired`` code: callers matching on codes see the
    same value for both conditions.
    """

    kind = "SecretNotExpired"


class InvalidExpiration(RegistryError):
    """Supplied expiry is not strictly in the future."""

    code = 105
    kind = "InvalidExpiration"


class InvalidData(RegistryError):
    """Payload empty or too long, salt of wrong length, or grantee equals caller."""

    code = 106
    kind = "InvalidData"


__all__ = [
    "RegistryError",
    "NotOwner",
    "SecretNotFound",
    "AlreadyExists",
    "NotAuthorized",
    "SecretExpired",
    "SecretNotExpired",
    "InvalidExpiration",
    "InvalidData",
]
