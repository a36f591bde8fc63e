"""Registry mapping backend type identifiers to backends.

Identifiers are case-insensitive. A backend is registered either as an
instance or as a zero-argument factory that is instantiated once, on first
lookup, so that driver imports only happen for backends actually used.

Built-in backends:
    ``aws``  ManagedStoreBackend (AWS Secrets Manager, read-only)
    ``mdb``  DocumentStoreBackend (MongoDB with client-side field encryption)

Example:
    >>> registry = get_backend_registry()
    >>> backend = registry.lookup("MDB")
    >>> registry.register("memory", AsyncMockSecretBackend())
"""

from __future__ import annotations

import threading
from importlib.metadata import entry_points
from typing import TYPE_CHECKING

from secretbridge.base import SecretBackend
from secretbridge.common.logging import get_logger
from secretbridge.exceptions import BackendNotFoundError, SecretConfigurationError


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence


ENTRY_POINT_GROUP = "secretbridge.backends"
"""Entry point group for discovering backend factories."""

logger = get_logger(__name__)


def _normalize(backend_type: str) -> str:
    return backend_type.strip().lower()


def _create_managed_store_backend() -> SecretBackend:
    from secretbridge.backends.aws import ManagedStoreBackend

    return ManagedStoreBackend()


def _create_document_store_backend() -> SecretBackend:
    from secretbridge.backends.document import DocumentStoreBackend

    return DocumentStoreBackend()


class BackendRegistry:
    """Thread-safe registry of secret backends.

    Example:
        >>> registry = BackendRegistry()
        >>> registry.register_factory("mdb", DocumentStoreBackend)
        >>> registry.lookup("Mdb") is registry.lookup("mdb")
        True
    """

    def __init__(self) -> None:
        self._backends: dict[str, SecretBackend] = {}
        self._factories: dict[str, Callable[[], SecretBackend]] = {}
        self._lock = threading.Lock()

    @property
    def backends(self) -> Mapping[str, SecretBackend]:
        """Read-only view of the instantiated backends."""
        return dict(self._backends)

    def register(self, backend_type: str, backend: SecretBackend) -> None:
        """Register a backend instance.

        Args:
            backend_type: Type identifier, matched case-insensitively.
            backend: The backend instance.

        Raises:
            SecretConfigurationError: If the identifier is empty or the
                object does not implement the backend contract.
        """
        name = self._validate_name(backend_type)
        if not isinstance(backend, SecretBackend):
            raise SecretConfigurationError(
                f"Object registered as '{name}' does not implement resolve/save",
                config_key="type",
            )
        with self._lock:
            self._factories.pop(name, None)
            self._backends[name] = backend

    def register_factory(
        self,
        backend_type: str,
        factory: Callable[[], SecretBackend],
    ) -> None:
        """Register a factory instantiated on first lookup.

        Replaces any backend already registered under the identifier.

        Raises:
            SecretConfigurationError: If the identifier is empty.
        """
        name = self._validate_name(backend_type)
        with self._lock:
            self._backends.pop(name, None)
            self._factories[name] = factory

    def unregister(self, backend_type: str) -> bool:
        """Unregister a backend.

        Returns:
            True if something was registered under the identifier.
        """
        name = _normalize(backend_type)
        with self._lock:
            instance_removed = self._backends.pop(name, None) is not None
            factory_removed = self._factories.pop(name, None) is not None
            return instance_removed or factory_removed

    def lookup(self, backend_type: str) -> SecretBackend:
        """Get the backend for a type identifier.

        Args:
            backend_type: Type identifier, matched case-insensitively.

        Returns:
            The backend, instantiated from its factory if needed.

        Raises:
            BackendNotFoundError: If no backend is registered for the identifier.
        """
        name = _normalize(backend_type)
        backend = self._backends.get(name)
        if backend is not None:
            return backend

        with self._lock:
            backend = self._backends.get(name)
            if backend is not None:
                return backend
            factory = self._factories.get(name)
            if factory is None:
                raise BackendNotFoundError(backend_type, available=self._list_unlocked())
            backend = factory()
            self._backends[name] = backend
            del self._factories[name]
            return backend

    def exists(self, backend_type: str) -> bool:
        """Check if a backend is registered for the identifier."""
        name = _normalize(backend_type)
        return name in self._backends or name in self._factories

    def list_types(self) -> Sequence[str]:
        """List all registered identifiers, sorted."""
        with self._lock:
            return self._list_unlocked()

    def clear(self) -> None:
        """Remove all registered backends."""
        with self._lock:
            self._backends.clear()
            self._factories.clear()

    def discover_plugins(self) -> int:
        """Register backend factories published by installed packages.

        Looks for callables under the 'secretbridge.backends' entry point
        group. Entry points that fail to load are logged and skipped.

        Returns:
            Number of backends discovered.

        Example:
            # In pyproject.toml:
            # [project.entry-points."secretbridge.backends"]
            # vault = "my_package:VaultBackend"

            >>> count = registry.discover_plugins()
        """
        discovered = 0
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                factory = ep.load()
            except Exception as e:
                logger.warning(
                    "Failed to load backend plugin",
                    entry_point=ep.name,
                    error=str(e),
                )
                continue
            if not callable(factory):
                logger.warning("Backend plugin is not callable", entry_point=ep.name)
                continue
            self.register_factory(ep.name, factory)
            discovered += 1
        return discovered

    def _list_unlocked(self) -> list[str]:
        return sorted(set(self._backends) | set(self._factories))

    @staticmethod
    def _validate_name(backend_type: str) -> str:
        name = _normalize(backend_type) if backend_type else ""
        if not name:
            raise SecretConfigurationError("Backend type cannot be empty", config_key="type")
        return name


def register_builtin_backends(registry: BackendRegistry) -> None:
    """Register the ``aws`` and ``mdb`` backends as lazy factories."""
    registry.register_factory("aws", _create_managed_store_backend)
    registry.register_factory("mdb", _create_document_store_backend)


# =============================================================================
# Global Singleton Access
# =============================================================================


_registry: BackendRegistry | None = None
_registry_lock = threading.Lock()


def get_backend_registry() -> BackendRegistry:
    """Get the process-wide backend registry, with built-ins registered."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                registry = BackendRegistry()
                register_builtin_backends(registry)
                _registry = registry
    return _registry


def reset_backend_registry() -> None:
    """Reset the process-wide registry (for testing)."""
    global _registry
    with _registry_lock:
        if _registry is not None:
            _registry.clear()
        _registry = None
