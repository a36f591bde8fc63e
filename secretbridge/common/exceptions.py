"""Base exceptions for secretbridge.

Every error the package raises derives from ``BridgeError``, which carries a
message, a ``details`` mapping for structured logging, and the underlying
``cause`` when one exists.

Hierarchy:
    BridgeError
    ├── ConfigurationError          (config files and sources)
    └── SecretError                 (see secretbridge.exceptions)
"""

from __future__ import annotations

from typing import Any, Self


class BridgeError(Exception):
    """Base exception for all secretbridge errors.

    Attributes:
        message: Human-readable description.
        details: Structured context, safe to log.
        cause: The exception that triggered this one, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} | Details: {self.details}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"

    def with_context(self, **kwargs: Any) -> Self:
        """Copy of this error with extra details; the original is unchanged.

        The copy keeps the concrete type and every attribute of the error.

        Example:
            >>> BridgeError("Failed", details={"key": "k1"}).with_context(flow="f1").details
            {'key': 'k1', 'flow': 'f1'}
        """
        enriched = type(self).__new__(type(self), *self.args)
        enriched.__dict__.update(self.__dict__)
        enriched.details = {**self.details, **kwargs}
        return enriched


class ConfigurationError(BridgeError):
    """A configuration source could not be read or is invalid.

    Attributes:
        config_key: The offending key, when one can be named.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, cause=cause)
        self.config_key = config_key
