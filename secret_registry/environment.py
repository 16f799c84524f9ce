"""Hosting environment stand-in: current principal and monotonic height."""
from .models import CallContext


class Environment:
    """Supplies the caller identity and a non-decreasing height counter.

    Each call to :meth:`context` captures the height at that moment, so a
    context stays consistent for the whole operation it is passed to.
    """

    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Height cannot be negative")
        self._height = height

    @property
    def height(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        """Move the height forward by ``blocks`` and return the new height."""
        if blocks < 0:
            raise ValueError("Height cannot move backwards")
        self._height += blocks
        return self._height

    def set_height(self, height: int) -> None:
        if height < self._height:
            raise ValueError(
                f"Height cannot move backwards ({self._height} -> {height})"
            )
        self._height = height

    def context(self, caller: str) -> CallContext:
        """Build the call context for ``caller`` at the current height."""
        return CallContext(caller=caller, height=self._height)

    def __repr__(self) -> str:
        return f'<Environment height={self._height}>'
