"""Backend contract and persisted record type.

Every backend satisfies ``SecretBackend``; backends holding connections also
satisfy ``ClosableBackend`` so the facade can release them on shutdown.

Example:
    >>> class StaticBackend:
    ...     async def resolve(self, key, options):
    ...         return "value" if key == "known" else None
    ...
    ...     async def save(self, key, value, options):
    ...         return True
    >>> isinstance(StaticBackend(), SecretBackend)
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable


if TYPE_CHECKING:
    from collections.abc import Mapping

    from secretbridge.options import SecretManagerOptions


@runtime_checkable
class SecretBackend(Protocol):
    """Protocol for secret backends.

    Backends may raise any ``SecretError``; converting failures into soft
    results is left to the caller.
    """

    async def resolve(self, key: str, options: SecretManagerOptions) -> Any | None:
        """Resolve a secret.

        Args:
            key: The secret key.
            options: Effective options for this operation.

        Returns:
            The secret value, or None when the backend reports it absent.
        """
        ...

    async def save(self, key: str, value: Any, options: SecretManagerOptions) -> bool:
        """Store a secret.

        Args:
            key: The secret key.
            value: The value to store.
            options: Effective options for this operation.

        Returns:
            True when the store acknowledged the write.
        """
        ...


@runtime_checkable
class ClosableBackend(Protocol):
    """Protocol for backends that hold connections."""

    async def close(self) -> None:
        """Release every connection held by the backend."""
        ...


@dataclass(frozen=True, slots=True)
class SecretRecord:
    """A secret as persisted by the document store backend.

    At most one record exists per ``key`` in a collection.

    Attributes:
        key: Unique key within the collection.
        value: Ciphertext when ``encrypted`` is set, else the plain value.
        encrypted: Whether ``value`` must be decrypted on read.
    """

    key: str
    value: Any
    encrypted: bool = False

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> SecretRecord:
        """Create from a stored document."""
        return cls(
            key=document["key"],
            value=document.get("value"),
            encrypted=bool(document.get("encrypted", False)),
        )

    def to_document(self) -> dict[str, Any]:
        """Convert to the stored document shape."""
        return {"key": self.key, "value": self.value, "encrypted": self.encrypted}

    def __repr__(self) -> str:
        return f"SecretRecord(key={self.key!r}, value=***, encrypted={self.encrypted})"
