"""Secret manager facade.

``SecretManager`` is the public entry point. For every call it merges the
stored options with the per-call override, looks up the backend for the
effective ``type`` and delegates to it. Failures never leave the facade:
they are logged once with the flow, key and backend type, and reported as
``None`` (resolve) or ``False`` (save).

When resolution yields no value, the environment variable literally named
after the key is used as a fallback.

Example:
    >>> manager = SecretManager(SecretManagerOptions(type="mdb", document=...))
    >>> await manager.save("api/key", "s3cr3t")
    True
    >>> await manager.resolve("api/key")
    's3cr3t'
    >>> await manager.resolve("api/key", {"type": "aws", "flow": "deploy-42"})
"""

from __future__ import annotations

import os
import threading
from typing import TYPE_CHECKING, Any

from secretbridge.base import ClosableBackend
from secretbridge.common.logging import LogContext, get_logger
from secretbridge.exceptions import SecretConfigurationError
from secretbridge.options import DEFAULT_BACKEND_TYPE, SecretManagerOptions, merge_options
from secretbridge.registry import get_backend_registry


if TYPE_CHECKING:
    from collections.abc import Mapping

    from secretbridge.base import SecretBackend
    from secretbridge.registry import BackendRegistry

    OptionsLike = SecretManagerOptions | Mapping[str, Any]


logger = get_logger(__name__)


class SecretManager:
    """Resolves and stores secrets through the configured backend.

    Args:
        options: Stored options. Defaults to ``type="aws"``.
        registry: Backend registry; the process-wide one when omitted.
    """

    def __init__(
        self,
        options: OptionsLike | None = None,
        *,
        registry: BackendRegistry | None = None,
    ) -> None:
        if options is None:
            self._options = SecretManagerOptions(type=DEFAULT_BACKEND_TYPE)
        else:
            self._options = merge_options(None, options)
        self._registry = registry

    @property
    def options(self) -> SecretManagerOptions:
        """The stored options."""
        return self._options

    @property
    def registry(self) -> BackendRegistry:
        """The registry backends are looked up in."""
        return self._registry or get_backend_registry()

    def configure(self, options: OptionsLike) -> None:
        """Merge options into the stored options, field by field."""
        self._options = merge_options(self._options, options)

    async def resolve(self, key: str, options: OptionsLike | None = None) -> Any | None:
        """Resolve a secret, falling back to the environment.

        Args:
            key: The secret key.
            options: Per-call override of the stored options.

        Returns:
            The backend value; else the env var named ``key``; else None.
        """
        effective = self._options
        value = None
        try:
            effective = merge_options(self._options, options)
            with LogContext(flow=effective.flow, operation="resolve", backend=effective.type):
                backend = self._backend_for(effective)
                value = await backend.resolve(key, effective)
        except Exception as e:
            self._log_failure("resolve", "Failed to resolve secret", e, key, effective)

        if value is None:
            value = os.environ.get(key)
        return value

    async def save(self, key: str, value: Any, options: OptionsLike | None = None) -> bool:
        """Store a secret.

        Args:
            key: The secret key.
            value: The value to store.
            options: Per-call override of the stored options.

        Returns:
            True on success, False on any failure.
        """
        effective = self._options
        try:
            effective = merge_options(self._options, options)
            with LogContext(flow=effective.flow, operation="save", backend=effective.type):
                backend = self._backend_for(effective)
                return bool(await backend.save(key, value, effective))
        except Exception as e:
            self._log_failure("save", "Failed to store secret", e, key, effective)
            return False

    async def close(self) -> None:
        """Close every instantiated backend that holds connections."""
        for backend_type, backend in self.registry.backends.items():
            if isinstance(backend, ClosableBackend):
                await backend.close()
                logger.debug("Closed backend", backend_type=backend_type)

    @staticmethod
    def _log_failure(
        operation: str,
        message: str,
        error: Exception,
        key: str,
        effective: SecretManagerOptions,
    ) -> None:
        # effective is the stored options when the override itself failed to merge
        with LogContext(flow=effective.flow, operation=operation, backend=effective.type):
            logger.error(
                message,
                exc_info=error,
                source=f"secret.manager.{operation}",
                key=key,
                backend_type=effective.type,
                error=str(error),
            )

    def _backend_for(self, options: SecretManagerOptions) -> SecretBackend:
        if not options.type:
            raise SecretConfigurationError(
                "Secret manager backend type is not defined",
                config_key="type",
            )
        return self.registry.lookup(options.type)


# =============================================================================
# Global Singleton Access
# =============================================================================


_manager: SecretManager | None = None
_manager_lock = threading.Lock()


def get_secret_manager() -> SecretManager:
    """Get the process-wide manager, loading its options on first use.

    Options come from ``SecretManagerOptions.load()``: environment, then
    config file, then defaults.
    """
    global _manager
    if _manager is None:
        with _manager_lock:
            if _manager is None:
                _manager = SecretManager(SecretManagerOptions.load())
    return _manager


def reset_secret_manager() -> None:
    """Reset the process-wide manager (for testing)."""
    global _manager
    with _manager_lock:
        _manager = None


# =============================================================================
# Convenience Functions
# =============================================================================


async def resolve_secret(key: str, options: OptionsLike | None = None) -> Any | None:
    """Resolve a secret through the process-wide manager.

    Example:
        >>> password = await resolve_secret("db/password", {"flow": "nightly"})
    """
    return await get_secret_manager().resolve(key, options)


async def save_secret(key: str, value: Any, options: OptionsLike | None = None) -> bool:
    """Store a secret through the process-wide manager.

    Example:
        >>> await save_secret("api/key", "new-value", {"type": "mdb"})
        True
    """
    return await get_secret_manager().save(key, value, options)
