"""Exception hierarchy for secret resolution and storage.

Backends raise these. The facade in ``secretbridge.manager`` catches them
and turns them into ``None``/``False`` results.

Exception Hierarchy:
    SecretError (base)
    ├── SecretNotFoundError
    ├── SecretAccessDeniedError
    ├── SecretConfigurationError
    │   ├── BackendNotFoundError
    │   └── SecretOperationNotSupportedError
    ├── SecretBackendError
    │   ├── SecretConnectionError
    │   └── SecretAuthenticationError
    └── SecretEncryptionError
        ├── SecretEncryptError
        └── SecretDecryptError

Example:
    >>> try:
    ...     value = await backend.resolve("db/password", options)
    ... except SecretConfigurationError as e:
    ...     raise SystemExit(f"fix option {e.config_key}")
"""

from __future__ import annotations

from typing import Any

from secretbridge.common.exceptions import BridgeError


class SecretError(BridgeError):
    """Base exception for all secret errors.

    Attributes:
        message: Human-readable error description.
        path: Optional secret key involved in the error.
        details: Optional dictionary with additional error context.
        cause: Optional original exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if path:
            details["path"] = path
        super().__init__(message, details=details, cause=cause)
        self.path = path


class SecretNotFoundError(SecretError):
    """Raised when a backend treats a missing secret as a failure.

    Example:
        >>> raise SecretNotFoundError(path="db/password", backend="aws")
        SecretNotFoundError: Secret not found: db/password
    """

    def __init__(
        self,
        path: str,
        *,
        backend: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if backend:
            details["backend"] = backend
        super().__init__(f"Secret not found: {path}", path=path, details=details, cause=cause)
        self.backend = backend


class SecretAccessDeniedError(SecretError):
    """Raised when the store refuses access to a secret.

    Attributes:
        operation: The operation that was attempted.
    """

    def __init__(
        self,
        message: str = "Access denied",
        *,
        path: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, path=path, details=details, cause=cause)
        self.operation = operation


class SecretConfigurationError(SecretError):
    """Raised when the effective options cannot drive the operation.

    Always fatal to the current operation and never retried.

    Attributes:
        config_key: The option that caused the error.

    Example:
        >>> raise SecretConfigurationError(
        ...     "Document store collection is required",
        ...     config_key="document.collection",
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, path=path, details=details, cause=cause)
        self.config_key = config_key


class BackendNotFoundError(SecretConfigurationError):
    """Raised when no backend is registered for a type identifier.

    Attributes:
        backend_type: The identifier that was looked up.
        available: Identifiers known to the registry at lookup time.
    """

    def __init__(
        self,
        backend_type: str,
        *,
        available: list[str] | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["backend_type"] = backend_type
        if available is not None:
            details["available"] = available
        super().__init__(
            f"Backend not found: {backend_type}",
            config_key="type",
            details=details,
            cause=cause,
        )
        self.backend_type = backend_type
        self.available = available or []


class SecretOperationNotSupportedError(SecretConfigurationError):
    """Raised when a backend does not implement an operation at all."""

    def __init__(
        self,
        operation: str,
        *,
        backend: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["operation"] = operation
        if backend:
            details["backend"] = backend
        message = f"Operation '{operation}' is not supported"
        if backend:
            message = f"Operation '{operation}' is not supported by backend '{backend}'"
        super().__init__(message, path=path, details=details, cause=cause)
        self.operation = operation
        self.backend = backend


class SecretBackendError(SecretError):
    """Raised for failures of the underlying store or client.

    Attributes:
        backend: Type identifier of the backend that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if backend:
            details["backend"] = backend
        super().__init__(message, path=path, details=details, cause=cause)
        self.backend = backend


class SecretConnectionError(SecretBackendError):
    """Raised when the store cannot be reached.

    Attributes:
        endpoint: The endpoint or connection variable involved.
    """

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        endpoint: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, backend=backend, details=details, cause=cause)
        self.endpoint = endpoint


class SecretAuthenticationError(SecretBackendError):
    """Raised when the store rejects the supplied credentials."""

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        auth_method: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if auth_method:
            details["auth_method"] = auth_method
        super().__init__(message, backend=backend, details=details, cause=cause)
        self.auth_method = auth_method


class SecretEncryptionError(SecretError):
    """Base class for field encryption failures.

    Attributes:
        algorithm: The encryption algorithm involved.
    """

    def __init__(
        self,
        message: str,
        *,
        algorithm: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if algorithm:
            details["algorithm"] = algorithm
        super().__init__(message, path=path, details=details, cause=cause)
        self.algorithm = algorithm


class SecretEncryptError(SecretEncryptionError):
    """The value could not be encrypted before writing."""


class SecretDecryptError(SecretEncryptionError):
    """A stored ciphertext could not be decrypted."""
