"""secretbridge: resolve and store secrets across interchangeable backends.

A ``SecretManager`` merges its stored options with per-call overrides and
dispatches to the backend selected by ``type``:

- ``mdb``: MongoDB with client-side field level encryption
- ``aws``: AWS Secrets Manager (read-only)

Quick Start:
    >>> from secretbridge import SecretManager, SecretManagerOptions
    >>> manager = SecretManager(SecretManagerOptions.from_dict({
    ...     "type": "mdb",
    ...     "document": {"uri": "MDB_URI", "database": "app", "collection": "secrets"},
    ... }))
    >>> await manager.save("api/key", "s3cr3t")
    True
    >>> await manager.resolve("api/key")
    's3cr3t'

Convenience Functions:
    >>> from secretbridge import resolve_secret
    >>> await resolve_secret("db/password", {"type": "aws", "flow": "nightly"})
"""

from secretbridge.base import ClosableBackend, SecretBackend, SecretRecord
from secretbridge.exceptions import (
    BackendNotFoundError,
    SecretAccessDeniedError,
    SecretAuthenticationError,
    SecretBackendError,
    SecretConfigurationError,
    SecretConnectionError,
    SecretDecryptError,
    SecretEncryptError,
    SecretEncryptionError,
    SecretError,
    SecretNotFoundError,
    SecretOperationNotSupportedError,
)
from secretbridge.manager import (
    SecretManager,
    get_secret_manager,
    reset_secret_manager,
    resolve_secret,
    save_secret,
)
from secretbridge.options import (
    DEFAULT_BACKEND_TYPE,
    CloudOptions,
    DocumentOptions,
    SecretManagerOptions,
    merge_options,
)
from secretbridge.registry import (
    ENTRY_POINT_GROUP,
    BackendRegistry,
    get_backend_registry,
    register_builtin_backends,
    reset_backend_registry,
)


__version__ = "1.0.0"

__all__ = [
    "__version__",
    # Base
    "ClosableBackend",
    "SecretBackend",
    "SecretRecord",
    # Exceptions
    "BackendNotFoundError",
    "SecretAccessDeniedError",
    "SecretAuthenticationError",
    "SecretBackendError",
    "SecretConfigurationError",
    "SecretConnectionError",
    "SecretDecryptError",
    "SecretEncryptError",
    "SecretEncryptionError",
    "SecretError",
    "SecretNotFoundError",
    "SecretOperationNotSupportedError",
    # Manager
    "SecretManager",
    "get_secret_manager",
    "reset_secret_manager",
    "resolve_secret",
    "save_secret",
    # Options
    "DEFAULT_BACKEND_TYPE",
    "CloudOptions",
    "DocumentOptions",
    "SecretManagerOptions",
    "merge_options",
    # Registry
    "ENTRY_POINT_GROUP",
    "BackendRegistry",
    "get_backend_registry",
    "register_builtin_backends",
    "reset_backend_registry",
]
