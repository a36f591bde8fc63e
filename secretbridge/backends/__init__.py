"""Built-in secret backends.

Each backend imports its driver on first use, so importing this package
does not require boto3 or pymongo to be importable until a backend class
is accessed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from secretbridge.backends.aws import ManagedStoreBackend
    from secretbridge.backends.document import ConnectionDescriptor, DocumentStoreBackend


__all__ = [
    "ConnectionDescriptor",
    "DocumentStoreBackend",
    "ManagedStoreBackend",
]


def __getattr__(name: str) -> Any:
    if name == "ManagedStoreBackend":
        from secretbridge.backends.aws import ManagedStoreBackend

        return ManagedStoreBackend
    if name in ("DocumentStoreBackend", "ConnectionDescriptor"):
        from secretbridge.backends import document

        return getattr(document, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
