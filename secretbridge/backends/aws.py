"""Managed store backend: AWS Secrets Manager, read-only.

Secrets are fetched with ``GetSecretValue`` and their ``SecretString`` is
parsed as JSON; a string that is not JSON is returned as-is. Unlike the
document store backend, a missing or empty secret is a failure here
(``SecretNotFoundError``), not ``None``. Saving is not supported.

Credentials are read from the env vars named in ``cloud`` (default
``AWS_ACCESS_KEY_ID`` / ``AWS_SECRET_ACCESS_KEY``). When those are unset the
default boto3 credential chain applies.

Requires: pip install boto3

Example:
    >>> backend = ManagedStoreBackend()
    >>> options = SecretManagerOptions.from_dict({"type": "aws", "cloud": {"region": "eu-west-1"}})
    >>> await backend.resolve("myapp/db", options)
    {'user': 'admin', 'pass': 'secret'}
"""

from __future__ import annotations

import asyncio
import json
import os
import threading
from typing import TYPE_CHECKING, Any

from secretbridge.common.logging import LogContext, get_logger, get_performance_logger
from secretbridge.exceptions import (
    SecretAccessDeniedError,
    SecretAuthenticationError,
    SecretBackendError,
    SecretConnectionError,
    SecretError,
    SecretNotFoundError,
    SecretOperationNotSupportedError,
)


if TYPE_CHECKING:
    from collections.abc import Callable

    from secretbridge.options import SecretManagerOptions


BACKEND_TYPE = "aws"
DEFAULT_REGION = "us-east-1"
DEFAULT_ACCESS_KEY_ID_ENV = "AWS_ACCESS_KEY_ID"
DEFAULT_SECRET_ACCESS_KEY_ENV = "AWS_SECRET_ACCESS_KEY"

logger = get_logger(__name__)
perf_logger = get_performance_logger(__name__)


class ManagedStoreBackend:
    """Read-only secret backend for AWS Secrets Manager.

    Args:
        session_factory: Builds a boto3 session from keyword arguments;
            ``boto3.Session`` when omitted.

    Raises:
        ImportError: If boto3 is not installed.
    """

    def __init__(self, *, session_factory: Callable[..., Any] | None = None) -> None:
        try:
            import boto3
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError as e:
            raise ImportError(
                "boto3 package required for ManagedStoreBackend. "
                "Install with: pip install boto3"
            ) from e

        self._session_factory = session_factory or boto3.Session
        self._BotoCoreError = BotoCoreError
        self._ClientError = ClientError
        self._clients: dict[tuple[str, str, str], Any] = {}
        self._lock = threading.Lock()

    async def resolve(self, key: str, options: SecretManagerOptions) -> Any:
        """Fetch and parse a secret.

        Returns:
            The parsed JSON value, or the raw string when it is not JSON.

        Raises:
            SecretNotFoundError: If the secret does not exist or is empty.
            SecretAccessDeniedError: If the caller may not read the secret.
            SecretAuthenticationError: If the credentials are rejected.
            SecretConnectionError: If AWS cannot be reached.
            SecretBackendError: For any other service error.
        """
        with LogContext(flow=options.flow, operation="resolve", backend=BACKEND_TYPE):
            try:
                return await asyncio.to_thread(self._get_secret_value, key, options)
            except SecretError as e:
                logger.error(
                    "Failed to retrieve secret from AWS Secrets Manager",
                    key=key,
                    error=str(e),
                )
                raise

    async def save(self, key: str, value: Any, options: SecretManagerOptions) -> bool:
        """Always fails: the managed store is read-only here.

        Raises:
            SecretOperationNotSupportedError: On every call.
        """
        raise SecretOperationNotSupportedError("save", backend=BACKEND_TYPE, path=key)

    async def close(self) -> None:
        """Drop cached clients."""
        with self._lock:
            self._clients.clear()

    def _get_secret_value(self, key: str, options: SecretManagerOptions) -> Any:
        try:
            client = self._get_client(options)
        except self._BotoCoreError as e:
            raise SecretBackendError(
                f"Failed to create AWS Secrets Manager client: {e}",
                backend=BACKEND_TYPE,
                path=key,
                cause=e,
            ) from e

        try:
            with perf_logger.timed("aws.get_secret_value", key=key):
                response = client.get_secret_value(SecretId=key)
        except self._ClientError as e:
            raise self._translate_client_error(e, key) from e
        except self._BotoCoreError as e:
            raise SecretConnectionError(
                f"Failed to connect to AWS: {e}",
                backend=BACKEND_TYPE,
                endpoint=client.meta.region_name,
                cause=e,
            ) from e

        secret_string = response.get("SecretString")
        if not secret_string:
            raise SecretNotFoundError(
                key,
                backend=BACKEND_TYPE,
                details={"reason": "SecretString is empty"},
            )
        try:
            return json.loads(secret_string)
        except json.JSONDecodeError:
            return secret_string

    def _get_client(self, options: SecretManagerOptions) -> Any:
        cloud = options.cloud
        region = (cloud.region if cloud else None) or os.environ.get("AWS_REGION") or DEFAULT_REGION
        access_key_env = (cloud.access_key_id if cloud else None) or DEFAULT_ACCESS_KEY_ID_ENV
        secret_key_env = (
            (cloud.secret_access_key if cloud else None) or DEFAULT_SECRET_ACCESS_KEY_ENV
        )
        cache_key = (region, access_key_env, secret_key_env)

        with self._lock:
            client = self._clients.get(cache_key)
            if client is not None:
                return client

            session_kwargs: dict[str, Any] = {"region_name": region}
            access_key_id = os.environ.get(access_key_env)
            secret_access_key = os.environ.get(secret_key_env)
            if access_key_id and secret_access_key:
                session_kwargs["aws_access_key_id"] = access_key_id
                session_kwargs["aws_secret_access_key"] = secret_access_key

            session = self._session_factory(**session_kwargs)
            client = session.client("secretsmanager")
            self._clients[cache_key] = client
            return client

    def _translate_client_error(self, error: Any, key: str) -> SecretError:
        error_code = error.response.get("Error", {}).get("Code", "")
        if error_code == "ResourceNotFoundException":
            return SecretNotFoundError(key, backend=BACKEND_TYPE, cause=error)
        if error_code == "AccessDeniedException":
            return SecretAccessDeniedError(
                f"Access denied to secret: {key}",
                path=key,
                operation="resolve",
                cause=error,
            )
        if error_code in ("UnrecognizedClientException", "InvalidSignatureException"):
            return SecretAuthenticationError(
                f"Authentication failed: {error}",
                backend=BACKEND_TYPE,
                auth_method="iam",
                cause=error,
            )
        return SecretBackendError(
            f"AWS Secrets Manager error: {error}",
            backend=BACKEND_TYPE,
            path=key,
            cause=error,
        )
